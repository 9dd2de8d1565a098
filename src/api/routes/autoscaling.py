"""
Autoscaling capacity reporting routes.

Read-only: these endpoints serve the last published AutoscalingMetadata and
never trigger an evaluation.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from src.services.evaluation import AutoscalingEvaluationService, get_evaluation_service

router = APIRouter(prefix="/autoscaling", tags=["Autoscaling"])


class CapacityStatusResponse(BaseModel):
    """All policies with their cached results."""

    version: int
    policies: dict[str, Any]


class PolicyStatusResponse(BaseModel):
    """One policy with its cached results."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    version: int
    deciders: dict[str, Any]
    last_results: dict[str, Any] | None = Field(default=None, alias="lastResults")


@router.get("/capacity", response_model=CapacityStatusResponse)
async def get_capacity(
    service: AutoscalingEvaluationService = Depends(get_evaluation_service),
) -> CapacityStatusResponse:
    """Get required capacity and per-decider reasons for every policy."""
    snapshot = await service.get_status()
    return CapacityStatusResponse(
        version=snapshot.version,
        policies=snapshot.autoscaling.to_dict()["policies"],
    )


@router.get("/capacity/{policy_name}", response_model=PolicyStatusResponse)
async def get_policy_capacity(
    policy_name: str,
    service: AutoscalingEvaluationService = Depends(get_evaluation_service),
) -> PolicyStatusResponse:
    """Get required capacity and per-decider reasons for one policy."""
    snapshot = await service.get_status()
    entry = snapshot.autoscaling.get(policy_name)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"Policy not found: {policy_name}")

    data = entry.to_dict()
    return PolicyStatusResponse(
        name=policy_name,
        version=snapshot.version,
        deciders=data["deciders"],
        last_results=data.get("lastResults"),
    )
