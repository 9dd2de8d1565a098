"""
Shared test fixtures and configuration.
"""

import random
import string

import pytest
from prometheus_client import CollectorRegistry

from src.capacity import (
    MAX_BYTES,
    AutoscalingCapacity,
    AutoscalingDeciderResults,
    AutoscalingResources,
    DeciderResult,
    FixedDeciderConfiguration,
    ResourceQuantity,
    aggregate,
    fixed_reason,
)
from src.cluster import ClusterSnapshot, InMemoryClusterStateStore, NodeInfo
from src.monitoring.metrics import AutoscalingMetrics
from src.policy import AutoscalingMetadata, AutoscalingPolicy, AutoscalingPolicyMetadata

# ============================================================================
# Random Generators
# ============================================================================


class AutoscalingGenerator:
    """
    Seeded generators for capacity values.

    Node-level dimensions are only generated where the tier-level dimension
    exists, mirroring the AutoscalingCapacity invariant.
    """

    def __init__(self, seed: int = 42) -> None:
        self.rng = random.Random(seed)

    def boolean(self) -> bool:
        return self.rng.random() < 0.5

    def name(self, length: int = 8) -> str:
        return "".join(self.rng.choice(string.ascii_lowercase) for _ in range(length))

    def quantity(self) -> ResourceQuantity:
        # Stay well below the ceiling
        return ResourceQuantity(self.rng.randint(0, MAX_BYTES >> 16))

    def nullable_quantity(self) -> ResourceQuantity | None:
        return self.quantity() if self.boolean() else None

    def resources(
        self, allow_storage: bool = True, allow_memory: bool = True
    ) -> AutoscalingResources:
        assert allow_storage or allow_memory
        add_storage = (allow_storage and self.boolean()) or not allow_memory
        add_memory = (allow_memory and self.boolean()) or not add_storage
        return AutoscalingResources(
            storage=self.quantity() if add_storage else None,
            memory=self.quantity() if add_memory else None,
        )

    def full_resources(self) -> AutoscalingResources:
        return AutoscalingResources(storage=self.quantity(), memory=self.quantity())

    def capacity(self) -> AutoscalingCapacity:
        tier = self.resources()
        node = (
            self.resources(tier.storage is not None, tier.memory is not None)
            if self.boolean()
            else None
        )
        return AutoscalingCapacity(tier=tier, node=node)

    def nullable_capacity(self) -> AutoscalingCapacity:
        return self.capacity() if self.boolean() else AutoscalingCapacity.EMPTY

    def decider_result(self, capacity: AutoscalingCapacity | None = None) -> DeciderResult:
        if capacity is None:
            capacity = self.nullable_capacity()
        return DeciderResult(
            capacity=capacity,
            reason=fixed_reason(
                self.nullable_quantity(), self.nullable_quantity(), self.rng.randint(0, 1000)
            ),
        )

    def decider_results(self) -> AutoscalingDeciderResults:
        count = self.rng.randint(1, 10)
        return aggregate({str(i): self.decider_result() for i in range(count)})

    def fixed_decider(self) -> FixedDeciderConfiguration:
        return FixedDeciderConfiguration(
            storage=self.nullable_quantity(),
            memory=self.nullable_quantity(),
            nodes=self.rng.choice([self.rng.randint(0, 1000), None]),
        )

    def policy(self, name: str | None = None) -> AutoscalingPolicy:
        return AutoscalingPolicy.of(name or self.name(), self.fixed_decider())

    def metadata(self, policy_count: int | None = None) -> AutoscalingMetadata:
        if policy_count is None:
            policy_count = self.rng.randint(0, 8)
        policies: dict[str, AutoscalingPolicyMetadata] = {}
        while len(policies) < policy_count:
            policy = self.policy()
            policies[policy.name] = AutoscalingPolicyMetadata(policy)
        return AutoscalingMetadata(policies=policies)


@pytest.fixture
def gen() -> AutoscalingGenerator:
    """Seeded generator, identical sequence in every test."""
    return AutoscalingGenerator(seed=42)


# ============================================================================
# Cluster Fixtures
# ============================================================================


@pytest.fixture
def nodes() -> tuple[NodeInfo, ...]:
    """A small three-node data tier."""
    return (
        NodeInfo(name="data-0", roles=("data",), storage="100gb", memory="16gb"),
        NodeInfo(name="data-1", roles=("data",), storage="100gb", memory="16gb"),
        NodeInfo(name="master-0", roles=("master",), memory="4gb"),
    )


@pytest.fixture
def fixed_policy() -> AutoscalingPolicy:
    """Policy holding only a Fixed decider (storage=100, memory=200, nodes=3)."""
    return AutoscalingPolicy.of(
        "hot", FixedDeciderConfiguration(storage=100, memory=200, nodes=3)
    )


@pytest.fixture
def snapshot(nodes: tuple[NodeInfo, ...], fixed_policy: AutoscalingPolicy) -> ClusterSnapshot:
    """Snapshot at version 7 holding the fixed policy."""
    return ClusterSnapshot(
        version=7,
        nodes=nodes,
        autoscaling=AutoscalingMetadata.of(fixed_policy),
    )


@pytest.fixture
def store(snapshot: ClusterSnapshot) -> InMemoryClusterStateStore:
    """In-memory store seeded with the snapshot."""
    return InMemoryClusterStateStore(snapshot)


@pytest.fixture
def metrics() -> AutoscalingMetrics:
    """Metrics bound to a private registry."""
    return AutoscalingMetrics(registry=CollectorRegistry(), prefix="test_autoscaling")
