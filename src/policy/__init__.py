"""
Policy module: autoscaling policies and the persisted cluster-wide metadata.
"""

from .models import (
    AutoscalingMetadata,
    AutoscalingPolicy,
    AutoscalingPolicyMetadata,
)
from .serialization import canonical_json, fingerprint, loads

__all__ = [
    "AutoscalingPolicy",
    "AutoscalingPolicyMetadata",
    "AutoscalingMetadata",
    "canonical_json",
    "fingerprint",
    "loads",
]
