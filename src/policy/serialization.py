"""
Canonical JSON codec for persisted autoscaling documents.

Keys are sorted and separators compact so equal values always encode to the
same bytes. Decoding rejects duplicate keys, which would otherwise silently
collapse two policies or two deciders of the same name.
"""

import hashlib
import json
from typing import Any

from src.capacity.errors import AutoscalingConfigurationError, MetadataCorruptionError


def canonical_json(data: Any) -> str:
    """Encode to deterministic JSON."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def fingerprint(data: Any) -> str:
    """SHA-256 hex digest of the canonical encoding."""
    return hashlib.sha256(canonical_json(data).encode("utf-8")).hexdigest()


def _reject_duplicates(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise AutoscalingConfigurationError(f"duplicate key [{key}]")
        result[key] = value
    return result


def loads(text: str | bytes) -> Any:
    """Decode JSON, rejecting duplicate object keys."""
    try:
        return json.loads(text, object_pairs_hook=_reject_duplicates)
    except json.JSONDecodeError as e:
        raise MetadataCorruptionError(f"invalid JSON document: {e}") from e
