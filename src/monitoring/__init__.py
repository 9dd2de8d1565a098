"""
Monitoring module for the capacity engine.

This module provides Prometheus metrics for evaluation cycles and deciders.
"""

from src.monitoring.metrics import (
    AutoscalingMetrics,
    CycleOutcomeLabel,
    DeciderOutcomeLabel,
    get_metrics,
    init_metrics,
)

__all__ = [
    "AutoscalingMetrics",
    "CycleOutcomeLabel",
    "DeciderOutcomeLabel",
    "get_metrics",
    "init_metrics",
]
