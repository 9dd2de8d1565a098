"""
Unit tests for Phase 7: Durable cluster-state store.

Tests:
- NodeInfo and ClusterSnapshot values
- In-memory compare-and-swap store
- SQL-backed store: publish, conflicts and restart survival
"""

import pytest

from src.capacity import MetadataCorruptionError, PublishConflictError, UnknownDeciderConfiguration
from src.cluster import ClusterChangedEvent, ClusterSnapshot, InMemoryClusterStateStore, NodeInfo
from src.policy import AutoscalingMetadata, AutoscalingPolicy
from src.services.evaluation import AutoscalingEvaluationService
from src.storage import (
    ClusterStateRepository,
    SqlClusterStateStore,
    create_engine,
    create_session_factory,
    init_db,
)


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'cluster_state.db'}"


async def _open_store(url: str, cluster_id: str = "default"):
    engine = create_engine(url, echo=False)
    await init_db(engine)
    return engine, SqlClusterStateStore(create_session_factory(engine), cluster_id=cluster_id)


# ============================================================================
# Snapshot Tests
# ============================================================================

class TestClusterSnapshot:
    """Tests for NodeInfo and ClusterSnapshot."""

    def test_node_roles_sorted(self):
        node = NodeInfo(name="n", roles=("ingest", "data"))
        assert node.roles == ("data", "ingest")

    def test_node_round_trip(self, nodes):
        for node in nodes:
            assert NodeInfo.from_dict(node.to_dict()) == node

    def test_node_from_dict_rejects_garbage(self):
        with pytest.raises(MetadataCorruptionError):
            NodeInfo.from_dict({"roles": []})

    def test_version_validated(self):
        for version in (-1, 1.0, True, None):
            with pytest.raises(ValueError):
                ClusterSnapshot(version=version)

    def test_nodes_with_role(self, snapshot):
        assert [node.name for node in snapshot.nodes_with_role("data")] == ["data-0", "data-1"]

    def test_next(self, snapshot):
        following = snapshot.next(nodes=())
        assert following.version == 8
        assert following.nodes == ()
        assert following.autoscaling == snapshot.autoscaling
        assert snapshot.version == 7

    def test_initial_event(self, snapshot):
        event = ClusterChangedEvent.initial(snapshot)
        assert event.previous == snapshot.autoscaling


# ============================================================================
# In-Memory Store Tests
# ============================================================================

class TestInMemoryStore:
    """Tests for InMemoryClusterStateStore."""

    @pytest.mark.asyncio
    async def test_default_state(self):
        current = await InMemoryClusterStateStore().current()
        assert current.version == 0
        assert current.autoscaling == AutoscalingMetadata()

    @pytest.mark.asyncio
    async def test_publish(self, store):
        published = await store.publish(7, AutoscalingMetadata())
        assert published.version == 8
        assert (await store.current()).autoscaling == AutoscalingMetadata()

    @pytest.mark.asyncio
    async def test_publish_conflict_changes_nothing(self, store, snapshot):
        with pytest.raises(PublishConflictError) as exc_info:
            await store.publish(6, AutoscalingMetadata())
        assert exc_info.value.expected_version == 6
        assert exc_info.value.actual_version == 7
        assert await store.current() == snapshot

    @pytest.mark.asyncio
    async def test_apply_nodes(self, store):
        updated = await store.apply_nodes([NodeInfo(name="solo")])
        assert updated.version == 8
        assert [node.name for node in updated.nodes] == ["solo"]


# ============================================================================
# SQL Store Tests
# ============================================================================

class TestSqlClusterStateStore:
    """Tests for SqlClusterStateStore."""

    @pytest.mark.asyncio
    async def test_empty_database(self, db_url):
        engine, store = await _open_store(db_url)
        try:
            current = await store.current()
        finally:
            await engine.dispose()
        assert current == ClusterSnapshot(version=0)

    @pytest.mark.asyncio
    async def test_first_publish_creates_row(self, db_url, fixed_policy):
        engine, store = await _open_store(db_url)
        try:
            metadata = AutoscalingMetadata.of(fixed_policy)
            published = await store.publish(0, metadata)
            current = await store.current()
        finally:
            await engine.dispose()

        assert published.version == 1
        assert current.version == 1
        assert current.autoscaling == metadata

    @pytest.mark.asyncio
    async def test_first_publish_requires_version_zero(self, db_url):
        engine, store = await _open_store(db_url)
        try:
            with pytest.raises(PublishConflictError):
                await store.publish(3, AutoscalingMetadata())
            assert (await store.current()).version == 0
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_stale_publish_rejected(self, db_url, fixed_policy):
        engine, store = await _open_store(db_url)
        try:
            await store.publish(0, AutoscalingMetadata.of(fixed_policy))
            await store.publish(1, AutoscalingMetadata())
            with pytest.raises(PublishConflictError):
                await store.publish(1, AutoscalingMetadata.of(fixed_policy))
            current = await store.current()
        finally:
            await engine.dispose()

        assert current.version == 2
        assert current.autoscaling == AutoscalingMetadata()

    @pytest.mark.asyncio
    async def test_apply_nodes_keeps_metadata(self, db_url, nodes, fixed_policy):
        engine, store = await _open_store(db_url)
        try:
            await store.publish(0, AutoscalingMetadata.of(fixed_policy))
            updated = await store.apply_nodes(nodes)
            current = await store.current()
        finally:
            await engine.dispose()

        assert updated.version == 2
        assert current.nodes == nodes
        assert current.autoscaling == AutoscalingMetadata.of(fixed_policy)

    @pytest.mark.asyncio
    async def test_clusters_isolated(self, db_url, fixed_policy):
        engine, first = await _open_store(db_url, cluster_id="east")
        second = SqlClusterStateStore(create_session_factory(engine), cluster_id="west")
        try:
            await first.publish(0, AutoscalingMetadata.of(fixed_policy))
            west = await second.current()
        finally:
            await engine.dispose()
        assert west.version == 0

    @pytest.mark.asyncio
    async def test_survives_restart(self, db_url, snapshot, metrics):
        """Test evaluated metadata reloads identically through a fresh engine."""
        engine, store = await _open_store(db_url)
        service = AutoscalingEvaluationService(store=store, metrics=metrics)
        try:
            await store.apply_nodes(snapshot.nodes)
            await service.put_policy(snapshot.autoscaling.get("hot").policy)
            current = await store.current()
            outcome = await service.on_cluster_changed(ClusterChangedEvent.initial(current))
        finally:
            service.close()
            await engine.dispose()

        assert outcome.published

        engine, reopened = await _open_store(db_url)
        try:
            restored = await reopened.current()
        finally:
            await engine.dispose()

        assert restored.version == outcome.published_version
        assert restored.autoscaling == outcome.metadata
        assert restored.autoscaling.fingerprint() == outcome.metadata.fingerprint()
        assert restored.nodes == snapshot.nodes

    @pytest.mark.asyncio
    async def test_unknown_kind_survives_restart(self, db_url):
        policy = AutoscalingPolicy(
            name="future",
            deciders={"p": UnknownDeciderConfiguration("proactive", {"window": 5})},
        )
        engine, store = await _open_store(db_url)
        try:
            await store.publish(0, AutoscalingMetadata.of(policy))
        finally:
            await engine.dispose()

        engine, reopened = await _open_store(db_url)
        try:
            restored = await reopened.current()
        finally:
            await engine.dispose()

        assert restored.autoscaling.get("future").policy == policy

    @pytest.mark.asyncio
    async def test_repository_compare_and_set(self, db_url):
        engine = create_engine(db_url, echo=False)
        await init_db(engine)
        session_factory = create_session_factory(engine)
        try:
            async with session_factory() as session, session.begin():
                repository = ClusterStateRepository(session)
                await repository.create("default", version=1, nodes="[]", autoscaling="{}")
                assert await repository.compare_and_set("default", 1, autoscaling='{"policies":{}}')
                assert not await repository.compare_and_set("default", 1, nodes="[]")
            async with session_factory() as session:
                record = await ClusterStateRepository(session).get("default")
        finally:
            await engine.dispose()

        assert record.version == 2
        assert record.autoscaling == '{"policies":{}}'
