"""
Capacity value types.

Responsibilities:
- ResourceQuantity: immutable, bounded, non-negative byte count
- AutoscalingResources: optional storage/memory pair
- AutoscalingCapacity: optional tier-level and node-level resources
- Pairwise combination (dimension-wise maximum) used by aggregation
"""

import re
from dataclasses import dataclass
from functools import reduce
from typing import Any, ClassVar, Iterable

from src.capacity.errors import AutoscalingConfigurationError, MetadataCorruptionError

# Signed 64-bit ceiling, values are rejected above it rather than wrapped
MAX_BYTES = (1 << 63) - 1

_UNITS: dict[str, int] = {
    "b": 1,
    "kb": 1 << 10,
    "mb": 1 << 20,
    "gb": 1 << 30,
    "tb": 1 << 40,
    "pb": 1 << 50,
}
_QUANTITY_PATTERN = re.compile(r"^\s*(\d+)\s*([a-zA-Z]*)\s*$")


@dataclass(frozen=True, order=True)
class ResourceQuantity:
    """A byte count in the range [0, MAX_BYTES]."""

    bytes: int

    def __post_init__(self) -> None:
        if isinstance(self.bytes, bool) or not isinstance(self.bytes, int):
            raise AutoscalingConfigurationError(
                f"byte count must be an integer, got [{self.bytes!r}]"
            )
        if self.bytes < 0:
            raise AutoscalingConfigurationError(
                f"byte count must be non-negative, got [{self.bytes}]"
            )
        if self.bytes > MAX_BYTES:
            raise AutoscalingConfigurationError(
                f"byte count [{self.bytes}] exceeds maximum [{MAX_BYTES}]"
            )

    @classmethod
    def parse(cls, value: "int | str | ResourceQuantity") -> "ResourceQuantity":
        """
        Parse a quantity from an int or a string with an optional binary unit.

        Examples: 1024, "1024", "512mb", "2GB".
        """
        if isinstance(value, ResourceQuantity):
            return value
        if isinstance(value, str):
            match = _QUANTITY_PATTERN.match(value)
            if match is None:
                raise AutoscalingConfigurationError(f"cannot parse byte quantity [{value}]")
            number, unit = match.groups()
            unit = unit.lower() or "b"
            if unit not in _UNITS:
                raise AutoscalingConfigurationError(
                    f"unknown byte unit [{unit}] in [{value}]"
                )
            return cls(int(number) * _UNITS[unit])
        return cls(value)

    @classmethod
    def of(cls, value: "int | str | ResourceQuantity | None") -> "ResourceQuantity | None":
        """Like parse, but passes None through."""
        return None if value is None else cls.parse(value)

    def __int__(self) -> int:
        return self.bytes

    def __str__(self) -> str:
        for unit in ("pb", "tb", "gb", "mb", "kb"):
            factor = _UNITS[unit]
            if self.bytes and self.bytes % factor == 0:
                return f"{self.bytes // factor}{unit}"
        return f"{self.bytes}b"


def _max_quantity(
    a: ResourceQuantity | None, b: ResourceQuantity | None
) -> ResourceQuantity | None:
    # A missing dimension places no constraint, so the other side wins
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def _quantity_from_json(data: dict[str, Any], key: str) -> ResourceQuantity | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise MetadataCorruptionError(f"[{key}] must be an integer byte count, got [{value!r}]")
    return ResourceQuantity(value)


@dataclass(frozen=True)
class AutoscalingResources:
    """Storage and memory, at least one of which is known."""

    storage: ResourceQuantity | None = None
    memory: ResourceQuantity | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "storage", ResourceQuantity.of(self.storage))
        object.__setattr__(self, "memory", ResourceQuantity.of(self.memory))
        if self.storage is None and self.memory is None:
            raise AutoscalingConfigurationError(
                "at least one of storage or memory must be specified"
            )

    @staticmethod
    def combine(
        a: "AutoscalingResources | None", b: "AutoscalingResources | None"
    ) -> "AutoscalingResources | None":
        """Dimension-wise maximum; None when both sides are None."""
        if a is None:
            return b
        if b is None:
            return a
        return AutoscalingResources(
            storage=_max_quantity(a.storage, b.storage),
            memory=_max_quantity(a.memory, b.memory),
        )

    def to_dict(self) -> dict[str, int]:
        """Convert to the persisted shape, omitting unknown dimensions."""
        result: dict[str, int] = {}
        if self.storage is not None:
            result["storage"] = self.storage.bytes
        if self.memory is not None:
            result["memory"] = self.memory.bytes
        return result

    @classmethod
    def from_dict(cls, data: Any) -> "AutoscalingResources | None":
        if data is None:
            return None
        if not isinstance(data, dict):
            raise MetadataCorruptionError(f"resources must be an object, got [{data!r}]")
        unexpected = set(data) - {"storage", "memory"}
        if unexpected:
            raise MetadataCorruptionError(f"unexpected resource fields {sorted(unexpected)}")
        storage = _quantity_from_json(data, "storage")
        memory = _quantity_from_json(data, "memory")
        if storage is None and memory is None:
            return None
        return cls(storage=storage, memory=memory)


@dataclass(frozen=True)
class AutoscalingCapacity:
    """
    A capacity opinion at tier and node granularity.

    A node-level dimension may only be present when the matching tier-level
    dimension is present. Both levels None means "no opinion".
    """

    tier: AutoscalingResources | None = None
    node: AutoscalingResources | None = None

    EMPTY: ClassVar["AutoscalingCapacity"]

    def __post_init__(self) -> None:
        if self.node is None:
            return
        if self.tier is None:
            raise AutoscalingConfigurationError(
                "node capacity requires tier capacity to be specified"
            )
        if self.node.storage is not None and self.tier.storage is None:
            raise AutoscalingConfigurationError(
                "node storage requires tier storage to be specified"
            )
        if self.node.memory is not None and self.tier.memory is None:
            raise AutoscalingConfigurationError(
                "node memory requires tier memory to be specified"
            )

    @property
    def is_empty(self) -> bool:
        return self.tier is None and self.node is None

    @staticmethod
    def combine(
        a: "AutoscalingCapacity", b: "AutoscalingCapacity"
    ) -> "AutoscalingCapacity":
        """Combine two opinions; associative and commutative."""
        return AutoscalingCapacity(
            tier=AutoscalingResources.combine(a.tier, b.tier),
            node=AutoscalingResources.combine(a.node, b.node),
        )

    @classmethod
    def combine_all(cls, capacities: Iterable["AutoscalingCapacity"]) -> "AutoscalingCapacity":
        return reduce(cls.combine, capacities, cls.EMPTY)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.tier is not None:
            result["tier"] = self.tier.to_dict()
        if self.node is not None:
            result["node"] = self.node.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: Any) -> "AutoscalingCapacity":
        if data is None:
            return cls.EMPTY
        if not isinstance(data, dict):
            raise MetadataCorruptionError(f"capacity must be an object, got [{data!r}]")
        unexpected = set(data) - {"tier", "node"}
        if unexpected:
            raise MetadataCorruptionError(f"unexpected capacity fields {sorted(unexpected)}")
        try:
            return cls(
                tier=AutoscalingResources.from_dict(data.get("tier")),
                node=AutoscalingResources.from_dict(data.get("node")),
            )
        except AutoscalingConfigurationError as e:
            raise MetadataCorruptionError(str(e)) from e


AutoscalingCapacity.EMPTY = AutoscalingCapacity()
