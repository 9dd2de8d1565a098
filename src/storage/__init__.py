"""
Storage module for the capacity engine.

Provides database connectivity, the cluster-state table and the durable
compare-and-swap store built on it.
"""

from src.storage.database import (
    Base,
    close_db,
    create_engine,
    create_session_factory,
    get_engine,
    get_session_factory,
    init_db,
)
from src.storage.models import ClusterStateRecord
from src.storage.repositories import (
    DEFAULT_CLUSTER_ID,
    ClusterStateRepository,
    SqlClusterStateStore,
)

__all__ = [
    # Database
    "Base",
    "close_db",
    "create_engine",
    "create_session_factory",
    "get_engine",
    "get_session_factory",
    "init_db",
    # Models
    "ClusterStateRecord",
    # Repositories
    "DEFAULT_CLUSTER_ID",
    "ClusterStateRepository",
    "SqlClusterStateStore",
]
