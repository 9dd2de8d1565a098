"""
Cluster module: read-only snapshots and the compare-and-swap state store.
"""

from .state import (
    ClusterChangedEvent,
    ClusterSnapshot,
    ClusterStateStore,
    InMemoryClusterStateStore,
    NodeInfo,
)

__all__ = [
    "NodeInfo",
    "ClusterSnapshot",
    "ClusterChangedEvent",
    "ClusterStateStore",
    "InMemoryClusterStateStore",
]
