"""
Liveness and readiness probes.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from src.services.evaluation import AutoscalingEvaluationService, get_evaluation_service
from src.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Health"])


class ProbeResponse(BaseModel):
    status: str


class ReadinessResponse(BaseModel):
    """Readiness of the engine and what it currently serves."""

    status: str
    cluster_state: str
    published_version: int | None
    cycle_state: str
    decider_kinds: list[str]


@router.get("/health", response_model=ProbeResponse)
async def health_check() -> ProbeResponse:
    return ProbeResponse(status="healthy")


@router.get("/health/live", response_model=ProbeResponse)
async def liveness_check() -> ProbeResponse:
    """The process is up and serving requests."""
    return ProbeResponse(status="alive")


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    responses={503: {"model": ReadinessResponse}},
)
async def readiness_check(
    service: AutoscalingEvaluationService = Depends(get_evaluation_service),
) -> ReadinessResponse | JSONResponse:
    """
    Ready once the published cluster state can be read back and decoded.

    Returns 503 with the same body when it cannot.
    """
    published_version: int | None = None
    try:
        published_version = (await service.get_status()).version
    except Exception as e:
        logger.warning("Cluster state unreadable", error=str(e))

    readiness = ReadinessResponse(
        status="ready" if published_version is not None else "not_ready",
        cluster_state="healthy" if published_version is not None else "unhealthy",
        published_version=published_version,
        cycle_state=service.state.value,
        decider_kinds=service.registry.kinds(),
    )
    if published_version is None:
        return JSONResponse(status_code=503, content=readiness.model_dump())
    return readiness
