"""
Cluster-state snapshot and the compare-and-swap publishing contract.

The replication/consensus machinery that distributes cluster state lives
outside this package. The engine only needs to read an immutable snapshot and
submit a full proposed AutoscalingMetadata that is accepted or rejected as a
whole.
"""

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import Any, Protocol

from src.capacity.errors import MetadataCorruptionError, PublishConflictError
from src.capacity.resources import ResourceQuantity
from src.policy.models import AutoscalingMetadata
from src.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class NodeInfo:
    """A cluster node as seen by deciders."""

    name: str
    roles: tuple[str, ...] = ()
    storage: ResourceQuantity | None = None
    memory: ResourceQuantity | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "roles", tuple(sorted(self.roles)))
        object.__setattr__(self, "storage", ResourceQuantity.of(self.storage))
        object.__setattr__(self, "memory", ResourceQuantity.of(self.memory))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "roles": list(self.roles)}
        if self.storage is not None:
            data["storage"] = self.storage.bytes
        if self.memory is not None:
            data["memory"] = self.memory.bytes
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "NodeInfo":
        if not isinstance(data, dict) or not isinstance(data.get("name"), str):
            raise MetadataCorruptionError(f"malformed node [{data!r}]")
        return cls(
            name=data["name"],
            roles=tuple(data.get("roles", ())),
            storage=data.get("storage"),
            memory=data.get("memory"),
        )


@dataclass(frozen=True)
class ClusterSnapshot:
    """Read-only view of one cluster-state version."""

    version: int
    nodes: tuple[NodeInfo, ...] = ()
    autoscaling: AutoscalingMetadata = field(default_factory=AutoscalingMetadata)

    def __post_init__(self) -> None:
        if isinstance(self.version, bool) or not isinstance(self.version, int) or self.version < 0:
            raise ValueError(f"cluster state version must be a non-negative integer, got [{self.version!r}]")
        object.__setattr__(self, "nodes", tuple(self.nodes))

    def nodes_with_role(self, role: str) -> tuple[NodeInfo, ...]:
        return tuple(node for node in self.nodes if role in node.roles)

    def next(self, **changes: Any) -> "ClusterSnapshot":
        """The following version with the given fields replaced."""
        return replace(self, version=self.version + 1, **changes)


@dataclass(frozen=True)
class ClusterChangedEvent:
    """Trigger from the orchestrator: a new snapshot and the metadata it replaced."""

    snapshot: ClusterSnapshot
    previous: AutoscalingMetadata

    @classmethod
    def initial(cls, snapshot: ClusterSnapshot) -> "ClusterChangedEvent":
        return cls(snapshot=snapshot, previous=snapshot.autoscaling)


class ClusterStateStore(Protocol):
    """Single-writer, compare-and-swap access to the published cluster state."""

    async def current(self) -> ClusterSnapshot: ...

    async def publish(
        self, expected_version: int, metadata: AutoscalingMetadata
    ) -> ClusterSnapshot:
        """Atomically replace the autoscaling metadata or raise PublishConflictError."""
        ...


class InMemoryClusterStateStore:
    """Process-local ClusterStateStore."""

    def __init__(self, initial: ClusterSnapshot | None = None) -> None:
        self._state = initial or ClusterSnapshot(version=0)
        self._lock = asyncio.Lock()

    async def current(self) -> ClusterSnapshot:
        return self._state

    async def publish(
        self, expected_version: int, metadata: AutoscalingMetadata
    ) -> ClusterSnapshot:
        async with self._lock:
            if self._state.version != expected_version:
                raise PublishConflictError(expected_version, self._state.version)
            self._state = self._state.next(autoscaling=metadata)
            logger.debug("Cluster state published", version=self._state.version)
            return self._state

    async def apply_nodes(self, nodes: Iterable[NodeInfo]) -> ClusterSnapshot:
        """Record an external cluster change (node membership) as a new version."""
        async with self._lock:
            self._state = self._state.next(nodes=tuple(nodes))
            return self._state
