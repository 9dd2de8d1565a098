"""
Background Services for the capacity engine.

This module provides:
- Evaluation service running the cluster-state-driven evaluation cycle
- Administrative whole-value policy mutations
- Read-only reporting of the last published state
"""

from src.services.evaluation import (
    AutoscalingEvaluationService,
    CycleOutcome,
    CycleState,
    degraded_results,
    evaluate_policy_sequential,
    get_evaluation_service,
    init_evaluation_service,
    unknown_deciders,
)

__all__ = [
    "AutoscalingEvaluationService",
    "CycleOutcome",
    "CycleState",
    "degraded_results",
    "evaluate_policy_sequential",
    "get_evaluation_service",
    "init_evaluation_service",
    "unknown_deciders",
]
