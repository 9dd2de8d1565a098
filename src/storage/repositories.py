"""
Async repository layer for the cluster-state table.

Provides the SQLAlchemy-backed ClusterStateStore so the published
AutoscalingMetadata survives process restarts.
"""

from collections.abc import Iterable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.capacity.deciders import DeciderRegistry
from src.capacity.errors import PublishConflictError
from src.cluster.state import ClusterSnapshot, NodeInfo
from src.policy.models import AutoscalingMetadata
from src.policy.serialization import canonical_json, loads
from src.utils.logging import get_logger

from .models import ClusterStateRecord

logger = get_logger(__name__)

DEFAULT_CLUSTER_ID = "default"


class ClusterStateRepository:
    """CRUD for ClusterStateRecord with a version-guarded update."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, cluster_id: str) -> ClusterStateRecord | None:
        result = await self.session.execute(
            select(ClusterStateRecord).where(ClusterStateRecord.cluster_id == cluster_id)
        )
        return result.scalar_one_or_none()

    async def create(
        self, cluster_id: str, version: int, nodes: str, autoscaling: str
    ) -> ClusterStateRecord:
        record = ClusterStateRecord(
            cluster_id=cluster_id,
            version=version,
            nodes=nodes,
            autoscaling=autoscaling,
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def compare_and_set(
        self,
        cluster_id: str,
        expected_version: int,
        *,
        nodes: str | None = None,
        autoscaling: str | None = None,
    ) -> bool:
        """Bump the version and replace the given columns only if the version matches."""
        values: dict[str, object] = {"version": expected_version + 1}
        if nodes is not None:
            values["nodes"] = nodes
        if autoscaling is not None:
            values["autoscaling"] = autoscaling
        result = await self.session.execute(
            update(ClusterStateRecord)
            .where(
                ClusterStateRecord.cluster_id == cluster_id,
                ClusterStateRecord.version == expected_version,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


def _encode_nodes(nodes: Iterable[NodeInfo]) -> str:
    return canonical_json([node.to_dict() for node in nodes])


class SqlClusterStateStore:
    """ClusterStateStore persisted in a relational database."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cluster_id: str = DEFAULT_CLUSTER_ID,
        registry: DeciderRegistry | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._cluster_id = cluster_id
        self._registry = registry

    def _decode(self, record: ClusterStateRecord | None) -> ClusterSnapshot:
        if record is None:
            return ClusterSnapshot(version=0)
        return ClusterSnapshot(
            version=record.version,
            nodes=tuple(NodeInfo.from_dict(node) for node in loads(record.nodes)),
            autoscaling=AutoscalingMetadata.from_json(record.autoscaling, registry=self._registry),
        )

    async def current(self) -> ClusterSnapshot:
        async with self._session_factory() as session:
            record = await ClusterStateRepository(session).get(self._cluster_id)
            return self._decode(record)

    async def publish(
        self, expected_version: int, metadata: AutoscalingMetadata
    ) -> ClusterSnapshot:
        return await self._swap(expected_version, autoscaling=metadata)

    async def apply_nodes(self, nodes: Iterable[NodeInfo]) -> ClusterSnapshot:
        """Record an external node-membership change as a new version."""
        nodes = tuple(nodes)
        current = await self.current()
        return await self._swap(current.version, nodes=nodes)

    async def _swap(
        self,
        expected_version: int,
        *,
        nodes: tuple[NodeInfo, ...] | None = None,
        autoscaling: AutoscalingMetadata | None = None,
    ) -> ClusterSnapshot:
        encoded_nodes = _encode_nodes(nodes) if nodes is not None else None
        encoded_metadata = autoscaling.to_json() if autoscaling is not None else None
        try:
            async with self._session_factory() as session, session.begin():
                repository = ClusterStateRepository(session)
                record = await repository.get(self._cluster_id)
                previous = self._decode(record)
                if record is None:
                    if expected_version != 0:
                        raise PublishConflictError(expected_version, 0)
                    await repository.create(
                        self._cluster_id,
                        version=1,
                        nodes=encoded_nodes or "[]",
                        autoscaling=encoded_metadata or AutoscalingMetadata().to_json(),
                    )
                else:
                    swapped = await repository.compare_and_set(
                        self._cluster_id,
                        expected_version,
                        nodes=encoded_nodes,
                        autoscaling=encoded_metadata,
                    )
                    if not swapped:
                        raise PublishConflictError(expected_version, record.version)
        except IntegrityError as e:
            # Concurrent first write of the same cluster row
            raise PublishConflictError(expected_version, expected_version + 1) from e

        changes: dict[str, object] = {}
        if nodes is not None:
            changes["nodes"] = nodes
        if autoscaling is not None:
            changes["autoscaling"] = autoscaling
        snapshot = previous.next(**changes)
        logger.debug(
            "Cluster state persisted", cluster_id=self._cluster_id, version=snapshot.version
        )
        return snapshot
