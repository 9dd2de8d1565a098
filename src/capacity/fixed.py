"""
Fixed decider: states an explicit capacity regardless of cluster state.

Used as a manual override and as the reference decider in tests.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from src.capacity.deciders import DeciderKind, DeciderResult, Reason
from src.capacity.errors import AutoscalingConfigurationError
from src.capacity.resources import AutoscalingCapacity, AutoscalingResources, ResourceQuantity

if TYPE_CHECKING:
    from src.cluster.state import ClusterSnapshot

FIXED_KIND = "fixed"

_FIELDS = frozenset({"storage", "memory", "nodes"})


@dataclass(frozen=True)
class FixedDeciderConfiguration:
    """Optional fixed storage, memory and node count."""

    storage: ResourceQuantity | None = None
    memory: ResourceQuantity | None = None
    nodes: int | None = None

    kind: ClassVar[str] = FIXED_KIND

    def __post_init__(self) -> None:
        object.__setattr__(self, "storage", ResourceQuantity.of(self.storage))
        object.__setattr__(self, "memory", ResourceQuantity.of(self.memory))
        if self.nodes is not None:
            if isinstance(self.nodes, bool) or not isinstance(self.nodes, int):
                raise AutoscalingConfigurationError(
                    f"[nodes] must be an integer, got [{self.nodes!r}]"
                )
            if self.nodes < 0:
                raise AutoscalingConfigurationError(
                    f"[nodes] must be non-negative, got [{self.nodes}]"
                )

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any]) -> "FixedDeciderConfiguration":
        unexpected = set(fields) - _FIELDS
        if unexpected:
            raise AutoscalingConfigurationError(
                f"unknown fields {sorted(unexpected)} for decider kind [{FIXED_KIND}]"
            )
        return cls(
            storage=fields.get("storage"),
            memory=fields.get("memory"),
            nodes=fields.get("nodes"),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.storage is not None:
            result["storage"] = self.storage.bytes
        if self.memory is not None:
            result["memory"] = self.memory.bytes
        if self.nodes is not None:
            result["nodes"] = self.nodes
        return result


def fixed_reason(
    storage: ResourceQuantity | None, memory: ResourceQuantity | None, nodes: int | None
) -> Reason:
    return Reason(
        summary=f"fixed storage [{storage}] memory [{memory}] nodes [{nodes}]",
        details={
            "storage": storage.bytes if storage is not None else None,
            "memory": memory.bytes if memory is not None else None,
            "nodes": nodes,
        },
    )


class FixedDeciderService:
    """Returns the configured values as the tier requirement."""

    def evaluate(
        self, configuration: FixedDeciderConfiguration, snapshot: "ClusterSnapshot"
    ) -> DeciderResult:
        reason = fixed_reason(configuration.storage, configuration.memory, configuration.nodes)
        if configuration.storage is None and configuration.memory is None:
            return DeciderResult(capacity=AutoscalingCapacity.EMPTY, reason=reason)
        tier = AutoscalingResources(storage=configuration.storage, memory=configuration.memory)
        return DeciderResult(capacity=AutoscalingCapacity(tier=tier), reason=reason)


FIXED_DECIDER = DeciderKind(
    name=FIXED_KIND,
    parse=FixedDeciderConfiguration.from_fields,
    service=FixedDeciderService(),
)
