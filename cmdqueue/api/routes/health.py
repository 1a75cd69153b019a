"""
Health check routes.
"""

from datetime import UTC, datetime

from fastapi import APIRouter
from fastapi.responses import Response

from cmdqueue import __version__
from cmdqueue.api.dependencies import Gateway
from cmdqueue.observability.metrics import get_metrics
from cmdqueue.types.api import HealthResponse

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health of the API and the job store connection.",
)
async def health_check(gateway: Gateway) -> HealthResponse:
    """
    Perform a health check.

    Checks store connectivity and returns service status.

    Args:
        gateway: Job gateway.

    Returns:
        HealthResponse with service status.
    """
    store_ok = await gateway.engine.store.ping()

    return HealthResponse(
        status="healthy" if store_ok else "degraded",
        version=__version__,
        store="healthy" if store_ok else "unhealthy",
        timestamp=datetime.now(UTC),
    )


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the service is ready to receive traffic.",
)
async def readiness_check(gateway: Gateway) -> dict:
    """
    Kubernetes readiness probe endpoint.

    Returns:
        Ready status.
    """
    return {"ready": await gateway.engine.store.ping()}


@router.get(
    "/live",
    summary="Liveness check",
    description="Check if the service is alive.",
)
async def liveness_check() -> dict:
    """
    Kubernetes liveness probe endpoint.

    Returns:
        Alive status.
    """
    return {"alive": True}


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics.",
)
async def metrics() -> Response:
    """
    Expose Prometheus metrics.

    Returns:
        Prometheus-formatted metrics.
    """
    metrics_collector = get_metrics()
    return Response(
        content=metrics_collector.get_metrics(),
        media_type=metrics_collector.get_content_type(),
    )
