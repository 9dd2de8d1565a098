"""
Reporting API for the capacity engine.

Serves the last published autoscaling metadata, health probes and Prometheus
metrics. Nothing here triggers an evaluation: this process does not watch the
cluster for changes. Whatever embeds the engine drives cycles by calling
get_evaluation_service().on_cluster_changed(...) with each new snapshot; until
it does, the API reports what the last writer left in the database.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.settings import AppSettings, get_settings
from src.capacity.errors import MetadataCorruptionError
from src.monitoring.metrics import get_metrics, init_metrics
from src.services.evaluation import get_evaluation_service, init_evaluation_service
from src.storage.database import close_db, get_session_factory, init_db
from src.storage.repositories import SqlClusterStateStore
from src.utils.logging import get_logger, setup_logging

from .middleware import RequestIdMiddleware, request_timing_middleware
from .routes import autoscaling, health

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the durable store and start the evaluation service."""
    settings: AppSettings = app.state.settings
    logger.info("Capacity engine starting", env=settings.env)

    try:
        await init_db()
    except Exception as e:
        logger.error("Cluster-state database unavailable", error=str(e))
        raise

    store = SqlClusterStateStore(
        get_session_factory(), cluster_id=settings.autoscaling.cluster_id
    )
    init_evaluation_service(
        store=store,
        metrics=init_metrics(prefix=settings.autoscaling.metrics_prefix),
    )
    logger.info("Capacity engine ready", cluster_id=settings.autoscaling.cluster_id)

    yield

    get_evaluation_service().close()
    await close_db()
    logger.info("Capacity engine stopped")


async def _corrupt_metadata_handler(request: Request, exc: MetadataCorruptionError) -> JSONResponse:
    logger.error("Persisted autoscaling metadata is corrupt", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=503,
        content={"detail": "Published autoscaling metadata could not be read"},
    )


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


async def prometheus_metrics() -> Response:
    """Prometheus scrape endpoint."""
    metrics = get_metrics()
    return Response(content=metrics.generate_metrics(), media_type=metrics.get_content_type())


def create_app(settings: AppSettings | None = None) -> FastAPI:
    """Build the FastAPI application."""
    settings = settings or get_settings()
    app = FastAPI(
        title="Autoscaling Capacity Engine",
        description="Deterministic, explainable autoscaling capacity decisions",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIdMiddleware)
    app.middleware("http")(request_timing_middleware)

    app.add_exception_handler(MetadataCorruptionError, _corrupt_metadata_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)

    app.add_api_route("/metrics", prometheus_metrics, methods=["GET"], include_in_schema=False)
    app.include_router(health.router)
    app.include_router(autoscaling.router, prefix="/api/v1")
    return app


app = create_app()


def main() -> None:
    """Run the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_config=None,
    )


if __name__ == "__main__":
    main()
