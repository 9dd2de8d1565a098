"""
Unit tests for Phase 8: Monitoring.

Tests:
- Prometheus metric registration and export
- Metrics recorded by the evaluation service
"""

import pytest
from prometheus_client import CollectorRegistry

from src.capacity import AutoscalingCapacity, AutoscalingResources, UnknownDeciderConfiguration
from src.cluster import ClusterChangedEvent
from src.monitoring import (
    AutoscalingMetrics,
    CycleOutcomeLabel,
    DeciderOutcomeLabel,
    get_metrics,
    init_metrics,
)
from src.policy import AutoscalingPolicy
from src.services.evaluation import AutoscalingEvaluationService


def _sample(metrics: AutoscalingMetrics, name: str, labels: dict | None = None) -> float | None:
    return metrics.get_registry().get_sample_value(f"test_autoscaling_{name}", labels or {})


class TestAutoscalingMetrics:
    """Tests for AutoscalingMetrics."""

    def test_private_registry(self):
        first = AutoscalingMetrics(prefix="same")
        second = AutoscalingMetrics(prefix="same")
        assert first.get_registry() is not second.get_registry()

    def test_shared_registry(self):
        registry = CollectorRegistry()
        metrics = AutoscalingMetrics(registry=registry, prefix="shared")
        assert metrics.get_registry() is registry

    def test_record_cycle(self, metrics):
        metrics.record_cycle(CycleOutcomeLabel.PUBLISHED, 0.01)
        metrics.record_cycle(CycleOutcomeLabel.CONFLICT, 0.02)
        metrics.record_cycle(CycleOutcomeLabel.PUBLISHED, 0.03)

        assert _sample(metrics, "cycles_total", {"outcome": "published"}) == 2.0
        assert _sample(metrics, "cycles_total", {"outcome": "conflict"}) == 1.0
        assert _sample(metrics, "cycle_duration_seconds_count") == 3.0

    def test_record_published(self, metrics):
        metrics.record_published(42)
        assert _sample(metrics, "published_version") == 42.0

    def test_record_decider(self, metrics):
        metrics.record_decider("hot", "fixed", DeciderOutcomeLabel.TIMEOUT)
        labels = {"policy": "hot", "decider": "fixed", "outcome": "timeout"}
        assert _sample(metrics, "decider_evaluations_total", labels) == 1.0

    def test_required_capacity_unknown_dimensions(self, metrics):
        capacity = AutoscalingCapacity(
            tier=AutoscalingResources(storage=100),
            node=AutoscalingResources(storage=10),
        )
        metrics.set_required_capacity("hot", capacity)

        def value(level, resource):
            return _sample(
                metrics,
                "required_capacity_bytes",
                {"policy": "hot", "level": level, "resource": resource},
            )

        assert value("tier", "storage") == 100.0
        assert value("node", "storage") == 10.0
        assert value("tier", "memory") == -1.0
        assert value("node", "memory") == -1.0

    def test_clear_required_capacity(self, metrics):
        metrics.set_required_capacity(
            "hot", AutoscalingCapacity(tier=AutoscalingResources(storage=100))
        )
        metrics.clear_required_capacity("hot")
        metrics.clear_required_capacity("never-set")

        labels = {"policy": "hot", "level": "tier", "resource": "storage"}
        assert _sample(metrics, "required_capacity_bytes", labels) is None

    def test_generate_metrics(self, metrics):
        metrics.record_published(3)
        output = metrics.generate_metrics()
        assert isinstance(output, bytes)
        assert b"test_autoscaling_published_version 3.0" in output
        assert "text/plain" in metrics.get_content_type()

    def test_global_metrics(self):
        metrics = init_metrics(prefix="global_test")
        assert get_metrics() is metrics


class TestServiceMetrics:
    """Tests for metrics recorded during evaluation cycles."""

    @pytest.mark.asyncio
    async def test_cycle_metrics(self, store, snapshot, metrics):
        service = AutoscalingEvaluationService(store=store, metrics=metrics)
        try:
            await service.on_cluster_changed(ClusterChangedEvent.initial(snapshot))
        finally:
            service.close()

        assert _sample(metrics, "cycles_total", {"outcome": "published"}) == 1.0
        assert _sample(metrics, "published_version") == 8.0
        labels = {"policy": "hot", "decider": "fixed", "outcome": "ok"}
        assert _sample(metrics, "decider_evaluations_total", labels) == 1.0
        tier_storage = {"policy": "hot", "level": "tier", "resource": "storage"}
        assert _sample(metrics, "required_capacity_bytes", tier_storage) == 100.0

    @pytest.mark.asyncio
    async def test_degraded_metrics(self, store, snapshot, metrics):
        policy = AutoscalingPolicy(
            name="future", deciders={"p": UnknownDeciderConfiguration("proactive")}
        )
        service = AutoscalingEvaluationService(store=store, metrics=metrics)
        try:
            await service.evaluate_policy(policy, snapshot)
        finally:
            service.close()

        assert _sample(metrics, "degraded_policies_total", {"policy": "future"}) == 1.0

    @pytest.mark.asyncio
    async def test_conflict_metrics(self, store, snapshot, nodes, metrics):
        await store.apply_nodes(nodes)
        service = AutoscalingEvaluationService(store=store, metrics=metrics)
        try:
            await service.on_cluster_changed(ClusterChangedEvent.initial(snapshot))
        finally:
            service.close()

        assert _sample(metrics, "cycles_total", {"outcome": "conflict"}) == 1.0
        assert _sample(metrics, "cycles_total", {"outcome": "published"}) is None

    @pytest.mark.asyncio
    async def test_unchanged_metrics(self, store, snapshot, metrics):
        service = AutoscalingEvaluationService(store=store, metrics=metrics)
        try:
            await service.on_cluster_changed(ClusterChangedEvent.initial(snapshot))
            current = await store.current()
            await service.on_cluster_changed(ClusterChangedEvent.initial(current))
        finally:
            service.close()

        assert _sample(metrics, "cycles_total", {"outcome": "published"}) == 1.0
        assert _sample(metrics, "cycles_total", {"outcome": "unchanged"}) == 1.0
        assert _sample(metrics, "published_version") == 8.0

    @pytest.mark.asyncio
    async def test_deleted_policy_not_exported(self, store, snapshot, metrics):
        tier_storage = {"policy": "hot", "level": "tier", "resource": "storage"}
        service = AutoscalingEvaluationService(store=store, metrics=metrics)
        try:
            await service.on_cluster_changed(ClusterChangedEvent.initial(snapshot))
            assert _sample(metrics, "required_capacity_bytes", tier_storage) == 100.0

            await service.delete_policy("hot")
        finally:
            service.close()

        assert _sample(metrics, "required_capacity_bytes", tier_storage) is None

    @pytest.mark.asyncio
    async def test_removed_policy_cleared_on_cycle(self, snapshot, metrics):
        metrics.set_required_capacity(
            "gone", AutoscalingCapacity(tier=AutoscalingResources(memory=1))
        )
        previous = snapshot.autoscaling.put_policy(AutoscalingPolicy(name="gone", deciders={}))
        service = AutoscalingEvaluationService(metrics=metrics)
        try:
            await service.on_cluster_changed(
                ClusterChangedEvent(snapshot=snapshot, previous=previous)
            )
        finally:
            service.close()

        labels = {"policy": "gone", "level": "tier", "resource": "memory"}
        assert _sample(metrics, "required_capacity_bytes", labels) is None

    @pytest.mark.asyncio
    async def test_degraded_policy_not_exported(self, store, snapshot, metrics):
        metrics.set_required_capacity(
            "future", AutoscalingCapacity(tier=AutoscalingResources(storage=7))
        )
        policy = AutoscalingPolicy(
            name="future", deciders={"p": UnknownDeciderConfiguration("proactive")}
        )
        service = AutoscalingEvaluationService(store=store, metrics=metrics)
        try:
            await service.evaluate_policy(policy, snapshot)
        finally:
            service.close()

        labels = {"policy": "future", "level": "tier", "resource": "storage"}
        assert _sample(metrics, "required_capacity_bytes", labels) is None
