"""
Prometheus metrics for capacity evaluation cycles.

Responsibilities:
- Count evaluation cycles by outcome
- Track decider evaluations, faults and timeouts
- Expose the latest required capacity per policy
"""

from enum import Enum

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from src.capacity.resources import AutoscalingCapacity
from src.utils.logging import get_logger

logger = get_logger(__name__)


class CycleOutcomeLabel(str, Enum):
    """Outcome label of an evaluation cycle."""

    PUBLISHED = "published"
    CONFLICT = "conflict"
    UNCHANGED = "unchanged"
    FAILED = "failed"


class DeciderOutcomeLabel(str, Enum):
    """Outcome label of a single decider evaluation."""

    OK = "ok"
    ABSTAIN = "abstain"
    FAULT = "fault"
    TIMEOUT = "timeout"


class AutoscalingMetrics:
    """Prometheus metrics for the capacity engine."""

    def __init__(
        self,
        registry: CollectorRegistry | None = None,
        prefix: str = "autoscaling",
    ) -> None:
        """
        Initialize metrics.

        Args:
            registry: Prometheus registry (a private one if None)
            prefix: Prefix for all metric names
        """
        self._registry = registry or CollectorRegistry()
        self._prefix = prefix

        self._init_cycle_metrics()
        self._init_decider_metrics()
        self._init_capacity_metrics()

        logger.info("Metrics initialized", prefix=prefix)

    def _metric_name(self, name: str) -> str:
        return f"{self._prefix}_{name}"

    def _init_cycle_metrics(self) -> None:
        self.cycles_total = Counter(
            self._metric_name("cycles_total"),
            "Evaluation cycles by outcome",
            ["outcome"],
            registry=self._registry,
        )

        self.cycle_duration_seconds = Histogram(
            self._metric_name("cycle_duration_seconds"),
            "Time taken by one evaluation cycle",
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=self._registry,
        )

        self.published_version = Gauge(
            self._metric_name("published_version"),
            "Cluster-state version of the last published evaluation",
            registry=self._registry,
        )

    def _init_decider_metrics(self) -> None:
        self.decider_evaluations_total = Counter(
            self._metric_name("decider_evaluations_total"),
            "Decider evaluations by outcome",
            ["policy", "decider", "outcome"],
            registry=self._registry,
        )

        self.degraded_policies_total = Counter(
            self._metric_name("degraded_policies_total"),
            "Policies skipped because of unknown decider kinds",
            ["policy"],
            registry=self._registry,
        )

    def _init_capacity_metrics(self) -> None:
        self.required_capacity_bytes = Gauge(
            self._metric_name("required_capacity_bytes"),
            "Latest required capacity per policy",
            ["policy", "level", "resource"],
            registry=self._registry,
        )

    def record_cycle(self, outcome: CycleOutcomeLabel, duration_seconds: float) -> None:
        self.cycles_total.labels(outcome=outcome.value).inc()
        self.cycle_duration_seconds.observe(duration_seconds)

    def record_published(self, version: int) -> None:
        self.published_version.set(version)

    def record_decider(self, policy: str, decider: str, outcome: DeciderOutcomeLabel) -> None:
        self.decider_evaluations_total.labels(
            policy=policy, decider=decider, outcome=outcome.value
        ).inc()

    def record_degraded(self, policy: str) -> None:
        self.degraded_policies_total.labels(policy=policy).inc()

    def set_required_capacity(self, policy: str, capacity: AutoscalingCapacity) -> None:
        """Export every known dimension; unknown dimensions are exported as -1."""
        for level in ("tier", "node"):
            resources = getattr(capacity, level)
            for resource in ("storage", "memory"):
                quantity = getattr(resources, resource) if resources is not None else None
                self.required_capacity_bytes.labels(
                    policy=policy, level=level, resource=resource
                ).set(quantity.bytes if quantity is not None else -1)

    def clear_required_capacity(self, policy: str) -> None:
        """Stop exporting the requirement of a deleted or degraded policy."""
        for level in ("tier", "node"):
            for resource in ("storage", "memory"):
                try:
                    self.required_capacity_bytes.remove(policy, level, resource)
                except KeyError:
                    pass

    def generate_metrics(self) -> bytes:
        """Generate metrics in Prometheus text format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST

    def get_registry(self) -> CollectorRegistry:
        return self._registry


# Global instance
_metrics: AutoscalingMetrics | None = None


def get_metrics() -> AutoscalingMetrics:
    """Get the global metrics instance."""
    global _metrics
    if _metrics is None:
        _metrics = AutoscalingMetrics()
    return _metrics


def init_metrics(
    registry: CollectorRegistry | None = None,
    prefix: str = "autoscaling",
) -> AutoscalingMetrics:
    """Initialize the global metrics instance."""
    global _metrics
    _metrics = AutoscalingMetrics(registry=registry, prefix=prefix)
    return _metrics
