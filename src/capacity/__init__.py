"""
Capacity module: value types, decider contract and aggregation.

This module provides:
- Resources: ResourceQuantity, AutoscalingResources, AutoscalingCapacity
- Deciders: configuration/service contract and the kind registry
- Fixed decider: the built-in reference kind
- Results: aggregation of decider opinions
- Errors: configuration, corruption and publish-conflict exceptions
"""

from .deciders import (
    DeciderConfiguration,
    DeciderKind,
    DeciderRegistry,
    DeciderResult,
    DeciderService,
    Reason,
    UnknownDeciderConfiguration,
    fault_result,
    result_problem,
    safe_evaluate,
)
from .errors import (
    AutoscalingConfigurationError,
    MetadataCorruptionError,
    PublishConflictError,
    UnknownDeciderKindError,
)
from .fixed import (
    FIXED_DECIDER,
    FIXED_KIND,
    FixedDeciderConfiguration,
    FixedDeciderService,
    fixed_reason,
)
from .registry import (
    BUILTIN_DECIDERS,
    build_decider_registry,
    get_decider_registry,
    init_decider_registry,
)
from .resources import (
    MAX_BYTES,
    AutoscalingCapacity,
    AutoscalingResources,
    ResourceQuantity,
)
from .results import AutoscalingDeciderResults, aggregate

__all__ = [
    # Resources
    "MAX_BYTES",
    "ResourceQuantity",
    "AutoscalingResources",
    "AutoscalingCapacity",
    # Deciders
    "DeciderConfiguration",
    "DeciderService",
    "DeciderKind",
    "DeciderRegistry",
    "DeciderResult",
    "Reason",
    "UnknownDeciderConfiguration",
    "fault_result",
    "result_problem",
    "safe_evaluate",
    # Fixed decider
    "FIXED_KIND",
    "FIXED_DECIDER",
    "FixedDeciderConfiguration",
    "FixedDeciderService",
    "fixed_reason",
    # Registry
    "BUILTIN_DECIDERS",
    "build_decider_registry",
    "get_decider_registry",
    "init_decider_registry",
    # Results
    "AutoscalingDeciderResults",
    "aggregate",
    # Errors
    "AutoscalingConfigurationError",
    "UnknownDeciderKindError",
    "MetadataCorruptionError",
    "PublishConflictError",
]
