"""
Error taxonomy for the capacity engine.

Configuration errors are raised synchronously when a value is built and never
reach persisted state. Evaluation-time faults are not exceptions at all: they
surface as abstaining decider results.
"""


class AutoscalingConfigurationError(ValueError):
    """Malformed, out-of-range or contradictory configuration."""


class UnknownDeciderKindError(AutoscalingConfigurationError):
    """A decider kind was looked up that no registry entry provides."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"unknown decider kind [{kind}]")
        self.kind = kind


class MetadataCorruptionError(ValueError):
    """A persisted document does not have the expected shape."""


class PublishConflictError(RuntimeError):
    """Compare-and-swap publish rejected because the expected version is stale."""

    def __init__(self, expected_version: int, actual_version: int) -> None:
        super().__init__(
            f"cluster state version conflict: expected [{expected_version}], "
            f"current is [{actual_version}]"
        )
        self.expected_version = expected_version
        self.actual_version = actual_version
