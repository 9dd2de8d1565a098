"""
Autoscaling policy and cluster-wide metadata.

Every value here is immutable. Mutations return new values; the cluster-state
store swaps whole AutoscalingMetadata documents atomically.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from src.capacity.deciders import DeciderConfiguration, DeciderRegistry
from src.capacity.errors import AutoscalingConfigurationError, MetadataCorruptionError
from src.capacity.registry import get_decider_registry
from src.capacity.results import AutoscalingDeciderResults
from src.policy import serialization


def _check_name(name: Any, what: str) -> None:
    if not isinstance(name, str) or not name:
        raise AutoscalingConfigurationError(f"{what} name must be a non-empty string, got [{name!r}]")


@dataclass(frozen=True)
class AutoscalingPolicy:
    """A named set of deciders, kept in decider-name order."""

    name: str
    deciders: Mapping[str, DeciderConfiguration] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _check_name(self.name, "policy")
        for decider_name, configuration in self.deciders.items():
            _check_name(decider_name, "decider")
            if not isinstance(getattr(configuration, "kind", None), str):
                raise AutoscalingConfigurationError(
                    f"decider [{decider_name}] has no kind"
                )
        object.__setattr__(
            self, "deciders", {name: self.deciders[name] for name in sorted(self.deciders)}
        )

    @classmethod
    def of(cls, name: str, *configurations: DeciderConfiguration) -> "AutoscalingPolicy":
        """Build a policy keying each configuration by its kind."""
        deciders: dict[str, DeciderConfiguration] = {}
        for configuration in configurations:
            if configuration.kind in deciders:
                raise AutoscalingConfigurationError(
                    f"duplicate decider [{configuration.kind}] in policy [{name}]"
                )
            deciders[configuration.kind] = configuration
        return cls(name=name, deciders=deciders)

    def with_name(self, name: str) -> "AutoscalingPolicy":
        return replace(self, name=name)

    def with_deciders(self, deciders: Mapping[str, DeciderConfiguration]) -> "AutoscalingPolicy":
        return replace(self, deciders=deciders)

    def to_dict(self) -> dict[str, Any]:
        return {
            "deciders": {
                name: {"kind": configuration.kind, **configuration.to_dict()}
                for name, configuration in self.deciders.items()
            }
        }

    @classmethod
    def from_dict(
        cls,
        name: str,
        data: Any,
        registry: DeciderRegistry | None = None,
        strict: bool = True,
    ) -> "AutoscalingPolicy":
        """
        Build a policy from its persisted shape.

        Args:
            name: Policy name (the key it is stored under)
            data: {"deciders": {name: {"kind": ..., ...fields}}}
            registry: Decider registry (global registry if None)
            strict: Reject unknown kinds; when False they are kept verbatim
        """
        registry = registry or get_decider_registry()
        if not isinstance(data, dict) or not isinstance(data.get("deciders", {}), dict):
            raise AutoscalingConfigurationError(f"malformed policy [{name}]")
        deciders: dict[str, DeciderConfiguration] = {}
        for decider_name, entry in data.get("deciders", {}).items():
            if not isinstance(entry, dict) or not isinstance(entry.get("kind"), str):
                raise AutoscalingConfigurationError(
                    f"decider [{decider_name}] in policy [{name}] must declare a kind"
                )
            fields = {key: value for key, value in entry.items() if key != "kind"}
            deciders[decider_name] = registry.parse_configuration(
                entry["kind"], fields, strict=strict
            )
        return cls(name=name, deciders=deciders)


@dataclass(frozen=True)
class AutoscalingPolicyMetadata:
    """
    A policy plus the results of its latest evaluation.

    last_results is a reporting cache only and is never fed back into an
    evaluation.
    """

    policy: AutoscalingPolicy
    last_results: AutoscalingDeciderResults | None = None

    def __post_init__(self) -> None:
        if self.last_results is not None and list(self.last_results.results) != list(
            self.policy.deciders
        ):
            raise AutoscalingConfigurationError(
                f"results for policy [{self.policy.name}] do not match its deciders"
            )

    def with_results(self, results: AutoscalingDeciderResults | None) -> "AutoscalingPolicyMetadata":
        return replace(self, last_results=results)

    def to_dict(self) -> dict[str, Any]:
        data = self.policy.to_dict()
        if self.last_results is not None:
            data["lastResults"] = self.last_results.to_dict()
        return data


@dataclass(frozen=True)
class AutoscalingMetadata:
    """Cluster-wide autoscaling state, the unit replicated through cluster state."""

    policies: Mapping[str, AutoscalingPolicyMetadata] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name, policy_metadata in self.policies.items():
            if name != policy_metadata.policy.name:
                raise AutoscalingConfigurationError(
                    f"policy stored under [{name}] is named [{policy_metadata.policy.name}]"
                )
        object.__setattr__(
            self, "policies", {name: self.policies[name] for name in sorted(self.policies)}
        )

    @classmethod
    def of(cls, *policies: AutoscalingPolicy) -> "AutoscalingMetadata":
        entries: dict[str, AutoscalingPolicyMetadata] = {}
        for policy in policies:
            if policy.name in entries:
                raise AutoscalingConfigurationError(f"duplicate policy [{policy.name}]")
            entries[policy.name] = AutoscalingPolicyMetadata(policy)
        return cls(policies=entries)

    def policy_names(self) -> list[str]:
        return list(self.policies)

    def get(self, name: str) -> AutoscalingPolicyMetadata | None:
        return self.policies.get(name)

    def put_policy(self, policy: AutoscalingPolicy) -> "AutoscalingMetadata":
        """Insert or replace a whole policy; cached results of a changed policy are dropped."""
        existing = self.policies.get(policy.name)
        if existing is not None and existing.policy == policy:
            return self
        policies = dict(self.policies)
        policies[policy.name] = AutoscalingPolicyMetadata(policy)
        return AutoscalingMetadata(policies=policies)

    def remove_policy(self, name: str) -> "AutoscalingMetadata":
        if name not in self.policies:
            raise KeyError(name)
        return AutoscalingMetadata(
            policies={key: value for key, value in self.policies.items() if key != name}
        )

    def with_results(
        self, name: str, results: AutoscalingDeciderResults
    ) -> "AutoscalingMetadata":
        policies = dict(self.policies)
        policies[name] = self.policies[name].with_results(results)
        return AutoscalingMetadata(policies=policies)

    def to_dict(self) -> dict[str, Any]:
        return {"policies": {name: entry.to_dict() for name, entry in self.policies.items()}}

    def to_json(self) -> str:
        return serialization.canonical_json(self.to_dict())

    def fingerprint(self) -> str:
        return serialization.fingerprint(self.to_dict())

    @classmethod
    def from_dict(cls, data: Any, registry: DeciderRegistry | None = None) -> "AutoscalingMetadata":
        """
        Load persisted metadata.

        Unknown decider kinds are kept verbatim so only that policy is affected;
        any other invalid content raises MetadataCorruptionError.
        """
        if not isinstance(data, dict) or not isinstance(data.get("policies", {}), dict):
            raise MetadataCorruptionError("autoscaling metadata must contain a [policies] object")
        policies: dict[str, AutoscalingPolicyMetadata] = {}
        for name, entry in data.get("policies", {}).items():
            try:
                policy = AutoscalingPolicy.from_dict(name, entry, registry=registry, strict=False)
                last_results = None
                if entry.get("lastResults") is not None:
                    last_results = AutoscalingDeciderResults.from_dict(entry["lastResults"])
                policies[name] = AutoscalingPolicyMetadata(policy, last_results)
            except AutoscalingConfigurationError as e:
                raise MetadataCorruptionError(f"policy [{name}]: {e}") from e
        return cls(policies=policies)

    @classmethod
    def from_json(
        cls, text: str | bytes, registry: DeciderRegistry | None = None
    ) -> "AutoscalingMetadata":
        return cls.from_dict(serialization.loads(text), registry=registry)
