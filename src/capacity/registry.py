"""
Process-wide decider registry.

Built once with the built-in kinds plus any externally supplied ones, then
frozen for the lifetime of the process.
"""

from src.capacity.deciders import DeciderKind, DeciderRegistry
from src.capacity.fixed import FIXED_DECIDER

BUILTIN_DECIDERS: tuple[DeciderKind, ...] = (FIXED_DECIDER,)


def build_decider_registry(*extra_kinds: DeciderKind) -> DeciderRegistry:
    """Create a frozen registry with the built-in kinds and extra_kinds."""
    return DeciderRegistry((*BUILTIN_DECIDERS, *extra_kinds)).freeze()


# Global instance
_registry: DeciderRegistry | None = None


def get_decider_registry() -> DeciderRegistry:
    """Get the global decider registry."""
    global _registry
    if _registry is None:
        _registry = build_decider_registry()
    return _registry


def init_decider_registry(*extra_kinds: DeciderKind) -> DeciderRegistry:
    """Initialize the global decider registry with extra kinds."""
    global _registry
    _registry = build_decider_registry(*extra_kinds)
    return _registry
