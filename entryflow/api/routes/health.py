"""
Health check routes.
"""

from fastapi import APIRouter
from fastapi.responses import Response

from entryflow import __version__
from entryflow.api.dependencies import Store
from entryflow.observability.metrics import get_metrics
from entryflow.types.api import HealthResponse
from entryflow.types.entry import utc_now

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health of the API and the record store.",
)
async def health_check(store: Store) -> HealthResponse:
    """
    Perform a health check.

    Returns:
        HealthResponse with service status.
    """
    store_status = "healthy" if await store.ping() else "unhealthy"

    return HealthResponse(
        status="healthy" if store_status == "healthy" else "degraded",
        version=__version__,
        store=store_status,
        timestamp=utc_now(),
    )


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the service is ready to receive traffic.",
)
async def readiness_check(store: Store) -> dict:
    """Kubernetes readiness probe endpoint."""
    return {"ready": await store.ping()}


@router.get(
    "/live",
    summary="Liveness check",
    description="Check if the service is alive.",
)
async def liveness_check() -> dict:
    """Kubernetes liveness probe endpoint."""
    return {"alive": True}


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics.",
)
async def metrics() -> Response:
    """Expose Prometheus metrics."""
    metrics_collector = get_metrics()
    return Response(
        content=metrics_collector.get_metrics(),
        media_type=metrics_collector.get_content_type(),
    )
