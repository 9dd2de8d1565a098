"""
Evaluation Service for autoscaling capacity.

Responsibilities:
- React to cluster-state changes by re-evaluating every policy
- Run deciders concurrently on a worker pool, bounded by a timeout
- Turn decider faults into abstentions and degrade policies with unknown kinds
- Publish the staged metadata as one compare-and-swap update, skipping no-op cycles
- Apply whole-value administrative policy mutations
- Serve the last published state for reporting without re-evaluating
"""

import asyncio
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any

from config.settings import get_settings
from src.capacity.deciders import (
    DeciderConfiguration,
    DeciderRegistry,
    DeciderResult,
    fault_result,
    result_problem,
    safe_evaluate,
)
from src.capacity.errors import PublishConflictError
from src.capacity.registry import get_decider_registry
from src.capacity.results import AutoscalingDeciderResults, aggregate
from src.cluster.state import (
    ClusterChangedEvent,
    ClusterSnapshot,
    ClusterStateStore,
    InMemoryClusterStateStore,
)
from src.monitoring.metrics import (
    AutoscalingMetrics,
    CycleOutcomeLabel,
    DeciderOutcomeLabel,
    get_metrics,
)
from src.policy.models import AutoscalingMetadata, AutoscalingPolicy, AutoscalingPolicyMetadata
from src.utils.logging import get_logger, log_context

logger = get_logger(__name__)


class CycleState(str, Enum):
    """State of the evaluation cycle."""

    IDLE = "idle"
    EVALUATING = "evaluating"
    PUBLISHED = "published"


@dataclass
class CycleOutcome:
    """Result of one evaluation cycle."""

    snapshot_version: int
    published: bool
    metadata: AutoscalingMetadata
    published_version: int | None = None
    error: str | None = None
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "snapshot_version": self.snapshot_version,
            "published": self.published,
            "published_version": self.published_version,
            "error": self.error,
            "duration_seconds": self.duration_seconds,
            "autoscaling": self.metadata.to_dict(),
        }


def unknown_deciders(policy: AutoscalingPolicy, registry: DeciderRegistry) -> list[str]:
    """Names of deciders whose kind the registry cannot evaluate."""
    return [name for name, configuration in policy.deciders.items() if configuration.kind not in registry]


def degraded_results(policy: AutoscalingPolicy, unknown: list[str]) -> AutoscalingDeciderResults:
    """Results standing in for a policy that could not be evaluated."""
    results: dict[str, DeciderResult] = {}
    for name, configuration in policy.deciders.items():
        if name in unknown:
            results[name] = DeciderResult.abstain(
                f"unknown decider kind [{configuration.kind}], policy evaluation skipped",
                kind=configuration.kind,
            )
        else:
            results[name] = DeciderResult.abstain(
                "not evaluated, policy holds deciders of unknown kind",
                unknown=sorted(unknown),
            )
    return aggregate(results, degraded=True)


def evaluate_policy_sequential(
    policy: AutoscalingPolicy,
    snapshot: ClusterSnapshot,
    registry: DeciderRegistry | None = None,
) -> AutoscalingDeciderResults:
    """Evaluate a policy's deciders one after another on the calling thread."""
    registry = registry or get_decider_registry()
    unknown = unknown_deciders(policy, registry)
    if unknown:
        return degraded_results(policy, unknown)
    return aggregate(
        (name, safe_evaluate(registry, name, configuration, snapshot))
        for name, configuration in policy.deciders.items()
    )


class AutoscalingEvaluationService:
    """
    Evaluation cycle driver.

    Cycles run one at a time (Idle -> Evaluating -> Published). A cycle whose
    snapshot went stale before publishing is rejected by the store and its
    results are discarded; nothing is partially applied.
    """

    def __init__(
        self,
        store: ClusterStateStore | None = None,
        registry: DeciderRegistry | None = None,
        metrics: AutoscalingMetrics | None = None,
        decider_timeout_seconds: float | None = None,
        max_workers: int | None = None,
        publish_retries: int | None = None,
    ) -> None:
        """
        Initialize the evaluation service.

        Args:
            store: Cluster-state store to read from and publish to
            registry: Decider registry (global registry if None)
            metrics: Metrics exporter (global metrics if None)
            decider_timeout_seconds: Upper bound for one decider evaluation
            max_workers: Size of the decider worker pool
            publish_retries: Retries for administrative mutations on conflict
        """
        settings = get_settings().autoscaling
        self._store = store or InMemoryClusterStateStore()
        self._registry = registry or get_decider_registry()
        self._metrics = metrics or get_metrics()
        self._decider_timeout = (
            decider_timeout_seconds
            if decider_timeout_seconds is not None
            else settings.decider_timeout_seconds
        )
        self._publish_retries = (
            publish_retries if publish_retries is not None else settings.publish_retries
        )
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or settings.max_workers,
            thread_name_prefix="decider",
        )

        self._state = CycleState.IDLE
        self._cycle_lock = asyncio.Lock()

        # Statistics
        self._stats = {
            "cycles": 0,
            "published": 0,
            "conflicts": 0,
            "unchanged": 0,
            "failed": 0,
            "decider_faults": 0,
            "decider_timeouts": 0,
            "degraded_policies": 0,
        }

        logger.info(
            "Evaluation service initialized",
            decider_timeout_seconds=self._decider_timeout,
            kinds=self._registry.kinds(),
        )

    @property
    def state(self) -> CycleState:
        return self._state

    @property
    def store(self) -> ClusterStateStore:
        return self._store

    @property
    def registry(self) -> DeciderRegistry:
        return self._registry

    def close(self) -> None:
        """Release the worker pool; in-flight decider calls are abandoned."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------
    # Evaluation cycle
    # ------------------------------------------------------------------

    async def on_cluster_changed(self, event: ClusterChangedEvent) -> CycleOutcome:
        """Run one evaluation cycle for the snapshot carried by event."""
        async with self._cycle_lock:
            with log_context(snapshot_version=event.snapshot.version):
                return await self._run_cycle(event)

    async def _run_cycle(self, event: ClusterChangedEvent) -> CycleOutcome:
        snapshot = event.snapshot
        start = time.perf_counter()
        self._state = CycleState.EVALUATING
        self._stats["cycles"] += 1

        current_names = set(snapshot.autoscaling.policies)
        previous_names = set(event.previous.policies)
        removed = sorted(previous_names - current_names)
        logger.info(
            "Evaluation cycle started",
            policies=len(current_names),
            added=sorted(current_names - previous_names),
            removed=removed,
        )
        for name in removed:
            self._metrics.clear_required_capacity(name)

        try:
            staged = await self.evaluate_metadata(snapshot)
        except Exception as e:
            logger.exception("Evaluation cycle failed", error=str(e))
            return self._failed(snapshot, start, e)

        if staged == snapshot.autoscaling:
            self._state = CycleState.IDLE
            self._stats["unchanged"] += 1
            duration = time.perf_counter() - start
            self._metrics.record_cycle(CycleOutcomeLabel.UNCHANGED, duration)
            logger.info("Evaluation unchanged, nothing to publish")
            return CycleOutcome(
                snapshot_version=snapshot.version,
                published=False,
                metadata=snapshot.autoscaling,
                duration_seconds=duration,
            )

        try:
            published = await self._store.publish(snapshot.version, staged)
        except PublishConflictError as e:
            self._state = CycleState.IDLE
            self._stats["conflicts"] += 1
            duration = time.perf_counter() - start
            self._metrics.record_cycle(CycleOutcomeLabel.CONFLICT, duration)
            logger.warning("Publish rejected, discarding cycle results", error=str(e))
            return CycleOutcome(
                snapshot_version=snapshot.version,
                published=False,
                metadata=snapshot.autoscaling,
                error=str(e),
                duration_seconds=duration,
            )
        except Exception as e:
            logger.exception("Publishing evaluation results failed", error=str(e))
            return self._failed(snapshot, start, e)

        self._state = CycleState.PUBLISHED
        self._stats["published"] += 1
        duration = time.perf_counter() - start
        self._metrics.record_cycle(CycleOutcomeLabel.PUBLISHED, duration)
        self._metrics.record_published(published.version)
        logger.info(
            "Evaluation cycle published",
            published_version=published.version,
            duration_ms=round(duration * 1000, 2),
        )
        return CycleOutcome(
            snapshot_version=snapshot.version,
            published=True,
            metadata=published.autoscaling,
            published_version=published.version,
            duration_seconds=duration,
        )

    def _failed(self, snapshot: ClusterSnapshot, start: float, error: Exception) -> CycleOutcome:
        """Close a cycle that could not stage or publish; the store is left untouched."""
        self._state = CycleState.IDLE
        self._stats["failed"] += 1
        duration = time.perf_counter() - start
        self._metrics.record_cycle(CycleOutcomeLabel.FAILED, duration)
        return CycleOutcome(
            snapshot_version=snapshot.version,
            published=False,
            metadata=snapshot.autoscaling,
            error=str(error),
            duration_seconds=duration,
        )

    async def evaluate_metadata(self, snapshot: ClusterSnapshot) -> AutoscalingMetadata:
        """Stage new metadata with fresh results for every policy in snapshot."""
        entries = list(snapshot.autoscaling.policies.values())
        results = await asyncio.gather(
            *(self.evaluate_policy(entry.policy, snapshot) for entry in entries)
        )
        return AutoscalingMetadata(
            policies={
                entry.policy.name: entry.with_results(result)
                for entry, result in zip(entries, results)
            }
        )

    async def evaluate_policy(
        self, policy: AutoscalingPolicy, snapshot: ClusterSnapshot
    ) -> AutoscalingDeciderResults:
        """Evaluate all deciders of policy concurrently and aggregate their results."""
        unknown = unknown_deciders(policy, self._registry)
        if unknown:
            self._stats["degraded_policies"] += 1
            self._metrics.record_degraded(policy.name)
            self._metrics.clear_required_capacity(policy.name)
            logger.error(
                "Unknown decider kind, skipping policy",
                policy=policy.name,
                deciders=unknown,
            )
            return degraded_results(policy, unknown)

        names = list(policy.deciders)
        evaluated = await asyncio.gather(
            *(
                self._evaluate_decider(policy.name, name, policy.deciders[name], snapshot)
                for name in names
            )
        )
        results = aggregate(zip(names, evaluated))
        self._metrics.set_required_capacity(policy.name, results.required_capacity)
        return results

    async def _evaluate_decider(
        self,
        policy: str,
        name: str,
        configuration: DeciderConfiguration,
        snapshot: ClusterSnapshot,
    ) -> DeciderResult:
        loop = asyncio.get_running_loop()
        service = self._registry.service_for(configuration)
        future = loop.run_in_executor(self._executor, service.evaluate, configuration, snapshot)
        try:
            result = await asyncio.wait_for(future, timeout=self._decider_timeout)
        except asyncio.TimeoutError:
            self._stats["decider_timeouts"] += 1
            self._metrics.record_decider(policy, name, DeciderOutcomeLabel.TIMEOUT)
            logger.warning(
                "Decider timed out",
                policy=policy,
                decider=name,
                timeout_seconds=self._decider_timeout,
            )
            return fault_result(name, f"timed out after {self._decider_timeout}s")
        except Exception as e:
            self._stats["decider_faults"] += 1
            self._metrics.record_decider(policy, name, DeciderOutcomeLabel.FAULT)
            logger.warning("Decider evaluation failed", policy=policy, decider=name, error=str(e))
            return fault_result(name, e)

        problem = result_problem(result)
        if problem is not None:
            self._stats["decider_faults"] += 1
            self._metrics.record_decider(policy, name, DeciderOutcomeLabel.FAULT)
            logger.warning(
                "Decider returned an invalid result",
                policy=policy,
                decider=name,
                problem=problem,
            )
            return fault_result(name, problem)

        outcome = DeciderOutcomeLabel.ABSTAIN if result.abstained else DeciderOutcomeLabel.OK
        self._metrics.record_decider(policy, name, outcome)
        return result

    # ------------------------------------------------------------------
    # Administrative mutations
    # ------------------------------------------------------------------

    async def put_policy(self, policy: AutoscalingPolicy) -> ClusterSnapshot:
        """Insert or replace a whole policy."""
        snapshot = await self._mutate(lambda metadata: metadata.put_policy(policy))
        logger.info("Policy stored", policy=policy.name, version=snapshot.version)
        return snapshot

    async def put_policy_document(self, name: str, document: dict[str, Any]) -> ClusterSnapshot:
        """Parse an administrative policy document strictly and store it."""
        policy = AutoscalingPolicy.from_dict(name, document, registry=self._registry, strict=True)
        return await self.put_policy(policy)

    async def delete_policy(self, name: str) -> ClusterSnapshot:
        """Remove a policy; raises KeyError when it does not exist."""
        snapshot = await self._mutate(lambda metadata: metadata.remove_policy(name))
        self._metrics.clear_required_capacity(name)
        logger.info("Policy deleted", policy=name, version=snapshot.version)
        return snapshot

    async def _mutate(self, change: Any) -> ClusterSnapshot:
        attempt = 0
        while True:
            current = await self._store.current()
            updated = change(current.autoscaling)
            if updated is current.autoscaling:
                return current
            try:
                return await self._store.publish(current.version, updated)
            except PublishConflictError as e:
                attempt += 1
                if attempt > self._publish_retries:
                    raise
                logger.debug("Retrying policy mutation after conflict", attempt=attempt, error=str(e))

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def get_status(self) -> ClusterSnapshot:
        """Latest published state; never triggers an evaluation."""
        return await self._store.current()

    async def get_policy_status(self, name: str) -> AutoscalingPolicyMetadata | None:
        snapshot = await self._store.current()
        return snapshot.autoscaling.get(name)

    def get_stats(self) -> dict[str, Any]:
        """Get service statistics."""
        return {"state": self._state.value, **self._stats}


# Global instance
_evaluation_service: AutoscalingEvaluationService | None = None


def get_evaluation_service() -> AutoscalingEvaluationService:
    """Get the global evaluation service."""
    global _evaluation_service
    if _evaluation_service is None:
        _evaluation_service = AutoscalingEvaluationService()
    return _evaluation_service


def init_evaluation_service(**kwargs: Any) -> AutoscalingEvaluationService:
    """Initialize the global evaluation service."""
    global _evaluation_service
    if _evaluation_service is not None:
        _evaluation_service.close()
    _evaluation_service = AutoscalingEvaluationService(**kwargs)
    return _evaluation_service
