"""
Decider contract.

A decider kind is a table entry: a kind name, a parser building a validated
configuration from plain fields, and a stateless service that turns a
configuration plus a read-only cluster snapshot into a DeciderResult.
Adding a kind means registering a new entry, not subclassing.
"""

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from src.capacity.errors import (
    AutoscalingConfigurationError,
    MetadataCorruptionError,
    UnknownDeciderKindError,
)
from src.capacity.resources import AutoscalingCapacity

if TYPE_CHECKING:
    from src.cluster.state import ClusterSnapshot


class DeciderConfiguration(Protocol):
    """Static configuration of one decider inside a policy."""

    @property
    def kind(self) -> str: ...

    def to_dict(self) -> dict[str, Any]:
        """Kind-specific fields only, the kind tag is added by the caller."""
        ...


class DeciderService(Protocol):
    """
    Pure evaluator for one decider kind.

    Must not mutate the snapshot, must not block on I/O and should not raise
    for a structurally valid snapshot; abstain with a reason instead.
    """

    def evaluate(
        self, configuration: DeciderConfiguration, snapshot: "ClusterSnapshot"
    ) -> "DeciderResult": ...


@dataclass(frozen=True)
class Reason:
    """Human-readable justification for a decider result."""

    summary: str
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.summary, str) or not self.summary:
            raise AutoscalingConfigurationError("reason summary must be a non-empty string")
        object.__setattr__(self, "details", dict(self.details))

    def to_dict(self) -> dict[str, Any]:
        return {"summary": self.summary, "details": dict(self.details)}

    @classmethod
    def from_dict(cls, data: Any) -> "Reason":
        if not isinstance(data, dict) or not isinstance(data.get("details", {}), dict):
            raise MetadataCorruptionError(f"malformed reason [{data!r}]")
        try:
            return cls(summary=data.get("summary"), details=data.get("details", {}))
        except AutoscalingConfigurationError as e:
            raise MetadataCorruptionError(str(e)) from e


@dataclass(frozen=True)
class DeciderResult:
    """One decider's capacity opinion; an empty capacity means it abstained."""

    capacity: AutoscalingCapacity
    reason: Reason

    def __post_init__(self) -> None:
        if self.capacity is None:
            object.__setattr__(self, "capacity", AutoscalingCapacity.EMPTY)
        if not isinstance(self.reason, Reason):
            raise AutoscalingConfigurationError("a decider result must carry a reason")

    @classmethod
    def abstain(cls, summary: str, **details: Any) -> "DeciderResult":
        return cls(capacity=AutoscalingCapacity.EMPTY, reason=Reason(summary, details))

    @property
    def abstained(self) -> bool:
        return self.capacity.is_empty

    def to_dict(self) -> dict[str, Any]:
        return {"capacity": self.capacity.to_dict(), "reason": self.reason.to_dict()}

    @classmethod
    def from_dict(cls, data: Any) -> "DeciderResult":
        if not isinstance(data, dict) or "reason" not in data:
            raise MetadataCorruptionError(f"malformed decider result [{data!r}]")
        return cls(
            capacity=AutoscalingCapacity.from_dict(data.get("capacity")),
            reason=Reason.from_dict(data["reason"]),
        )


@dataclass(frozen=True)
class UnknownDeciderConfiguration:
    """
    Configuration of a kind the registry does not know, kept verbatim.

    Produced only when loading persisted metadata so the document survives a
    round trip; policies holding one are skipped at evaluation time.
    """

    kind: str
    fields: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", dict(self.fields))

    def to_dict(self) -> dict[str, Any]:
        return dict(self.fields)


@dataclass(frozen=True)
class DeciderKind:
    """Registry entry tying a kind name to its parser and service."""

    name: str
    parse: Callable[[Mapping[str, Any]], DeciderConfiguration]
    service: DeciderService


class DeciderRegistry:
    """
    Lookup table of decider kinds.

    Populated once at startup and frozen; reads need no locking afterwards.
    """

    def __init__(self, kinds: Iterable[DeciderKind] = ()) -> None:
        self._kinds: dict[str, DeciderKind] = {}
        self._frozen = False
        for kind in kinds:
            self.register(kind)

    def register(self, kind: DeciderKind) -> None:
        if self._frozen:
            raise RuntimeError("decider registry is frozen")
        if not kind.name:
            raise AutoscalingConfigurationError("decider kind name must not be empty")
        if kind.name in self._kinds:
            raise AutoscalingConfigurationError(f"decider kind [{kind.name}] already registered")
        self._kinds[kind.name] = kind

    def freeze(self) -> "DeciderRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, name: object) -> bool:
        return name in self._kinds

    def kinds(self) -> list[str]:
        return sorted(self._kinds)

    def get(self, name: str) -> DeciderKind:
        try:
            return self._kinds[name]
        except KeyError:
            raise UnknownDeciderKindError(name) from None

    def parse_configuration(
        self, kind: str, fields: Mapping[str, Any], strict: bool = True
    ) -> DeciderConfiguration:
        """
        Build a configuration of the given kind.

        Args:
            kind: Kind tag
            fields: Kind-specific fields
            strict: Raise on unknown kinds instead of keeping them verbatim
        """
        if kind not in self._kinds:
            if strict:
                raise UnknownDeciderKindError(kind)
            return UnknownDeciderConfiguration(kind=kind, fields=dict(fields))
        return self._kinds[kind].parse(fields)

    def service_for(self, configuration: DeciderConfiguration) -> DeciderService:
        return self.get(configuration.kind).service


def fault_result(decider: str, error: BaseException | str) -> DeciderResult:
    """Abstention standing in for a decider that raised or timed out."""
    message = error if isinstance(error, str) else f"{type(error).__name__}: {error}"
    return DeciderResult.abstain(
        f"decider [{decider}] failed, no capacity opinion",
        fault=message,
    )


def result_problem(result: Any) -> str | None:
    """
    Why a decider's return value cannot be published, or None when it can.

    Reason details must encode as canonical JSON and decode back to an equal
    value, so sets, tuples, datetimes and non-string keys are all rejected.
    """
    if not isinstance(result, DeciderResult):
        return f"returned {type(result).__name__} instead of a result"

    from src.policy.serialization import canonical_json, loads

    details = result.reason.details
    try:
        portable = loads(canonical_json(details)) == details
    except (TypeError, ValueError, AutoscalingConfigurationError, MetadataCorruptionError):
        portable = False
    if not portable:
        return "reason details are not plain JSON values"
    return None


def safe_evaluate(
    registry: DeciderRegistry,
    name: str,
    configuration: DeciderConfiguration,
    snapshot: "ClusterSnapshot",
) -> DeciderResult:
    """Evaluate one decider, turning any fault or unpublishable result into an abstention."""
    try:
        result = registry.service_for(configuration).evaluate(configuration, snapshot)
    except Exception as e:
        return fault_result(name, e)
    problem = result_problem(result)
    if problem is not None:
        return fault_result(name, problem)
    return result
