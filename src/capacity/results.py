"""
Aggregation of decider results into one policy-level requirement.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from src.capacity.deciders import DeciderResult
from src.capacity.errors import AutoscalingConfigurationError, MetadataCorruptionError
from src.capacity.resources import AutoscalingCapacity


@dataclass(frozen=True)
class AutoscalingDeciderResults:
    """
    Output of one policy evaluation.

    required_capacity is always derived from results, so the two cannot
    disagree. results is kept in decider-name order.
    """

    results: Mapping[str, DeciderResult]
    degraded: bool = False
    required_capacity: AutoscalingCapacity = field(init=False)

    def __post_init__(self) -> None:
        for name, result in self.results.items():
            if not isinstance(name, str) or not name:
                raise AutoscalingConfigurationError(
                    f"decider name must be a non-empty string, got [{name!r}]"
                )
            if not isinstance(result, DeciderResult):
                raise AutoscalingConfigurationError(
                    f"result for decider [{name}] is not a DeciderResult"
                )
        ordered = {name: self.results[name] for name in sorted(self.results)}
        object.__setattr__(self, "results", ordered)
        object.__setattr__(
            self,
            "required_capacity",
            AutoscalingCapacity.combine_all(result.capacity for result in ordered.values()),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "requiredCapacity": self.required_capacity.to_dict(),
            "perDecider": {name: result.to_dict() for name, result in self.results.items()},
        }
        if self.degraded:
            data["degraded"] = True
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "AutoscalingDeciderResults":
        if not isinstance(data, dict) or not isinstance(data.get("perDecider", {}), dict):
            raise MetadataCorruptionError(f"malformed decider results [{data!r}]")
        try:
            decoded = cls(
                results={
                    name: DeciderResult.from_dict(result)
                    for name, result in data.get("perDecider", {}).items()
                },
                degraded=bool(data.get("degraded", False)),
            )
        except AutoscalingConfigurationError as e:
            raise MetadataCorruptionError(str(e)) from e
        stored = AutoscalingCapacity.from_dict(data.get("requiredCapacity"))
        if stored != decoded.required_capacity:
            raise MetadataCorruptionError(
                "stored requiredCapacity does not match the combination of per-decider results"
            )
        return decoded


def aggregate(
    results: Mapping[str, DeciderResult] | Iterable[tuple[str, DeciderResult]],
    degraded: bool = False,
) -> AutoscalingDeciderResults:
    """
    Combine decider results into an AutoscalingDeciderResults.

    Accepts a mapping or (name, result) pairs; duplicate names in pairs are
    rejected.
    """
    pairs = results.items() if isinstance(results, Mapping) else results
    collected: dict[str, DeciderResult] = {}
    for name, result in pairs:
        if name in collected:
            raise AutoscalingConfigurationError(f"duplicate decider name [{name}]")
        collected[name] = result
    return AutoscalingDeciderResults(results=collected, degraded=degraded)
