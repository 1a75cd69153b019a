"""
FastAPI application entry point.
"""

import asyncio
import logging
import time
from contextlib import AsyncExitStack, asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from cmdqueue import __version__
from cmdqueue.api.routes import health_router, jobs_router
from cmdqueue.config import get_settings
from cmdqueue.errors import (
    AlreadyExistsError,
    InvalidInputError,
    JobQueueError,
    NotFoundError,
    StoreUnavailableError,
)
from cmdqueue.gateway import JobGateway
from cmdqueue.observability.logging import setup_logging
from cmdqueue.observability.metrics import get_metrics, setup_metrics
from cmdqueue.observability.tracing import instrument_fastapi, setup_tracing
from cmdqueue.runtime import open_runtime
from cmdqueue.types.api import ErrorResponse
from cmdqueue.worker.main import Worker

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[type[JobQueueError], int] = {
    InvalidInputError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    AlreadyExistsError: status.HTTP_409_CONFLICT,
    StoreUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Opens the store and history unless a gateway was supplied to
    ``create_app``, and runs embedded workers when configured.
    """
    settings = get_settings()

    setup_logging()
    setup_metrics()
    setup_tracing()

    async with AsyncExitStack() as stack:
        workers: list[Worker] = []
        tasks: list[asyncio.Task] = []

        if getattr(app.state, "gateway", None) is None:
            runtime = await stack.enter_async_context(open_runtime(settings))
            app.state.gateway = runtime.gateway

            for index in range(settings.api_embedded_workers):
                worker = Worker(
                    runtime.engine,
                    worker_id=f"{settings.worker_id or 'api'}-{index}",
                )
                workers.append(worker)
                tasks.append(asyncio.create_task(worker.start()))

        logger.info(
            "Application started",
            extra={"embedded_workers": len(workers)},
        )

        yield

        for worker in workers:
            await worker.stop()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    logger.info("Application shutdown")


def _error_response(exc: JobQueueError, status_code: int) -> JSONResponse:
    error = ErrorResponse(error=type(exc).__name__, detail=exc.message)
    return JSONResponse(status_code=status_code, content=error.model_dump())


def _register_error_handlers(app: FastAPI) -> None:
    """Map job queue errors to HTTP responses."""

    @app.exception_handler(JobQueueError)
    async def job_queue_error_handler(request: Request, exc: JobQueueError):
        for error_type, status_code in ERROR_STATUS_CODES.items():
            if isinstance(exc, error_type):
                if status_code >= 500:
                    logger.warning(
                        "Request failed: store unavailable",
                        extra={"path": request.url.path, "error": exc.message},
                    )
                return _error_response(exc, status_code)

        logger.error(
            "Unhandled job queue error",
            extra={"path": request.url.path, "error": exc.message},
        )
        return _error_response(exc, status.HTTP_500_INTERNAL_SERVER_ERROR)


async def metrics_middleware(request: Request, call_next):
    """Record request count and latency per route."""
    start = time.perf_counter()
    response = await call_next(request)
    duration = time.perf_counter() - start

    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)
    get_metrics().record_api_request(
        method=request.method,
        endpoint=endpoint,
        status=response.status_code,
        duration_seconds=duration,
    )
    return response


def create_app(gateway: JobGateway | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        gateway: Optional pre-built gateway. When given, the lifespan does
            not open its own store or history.

    Returns:
        FastAPI: The configured application instance.
    """
    app = FastAPI(
        title="Command Queue API",
        description="Distributed queue of shell commands run by worker processes",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    if gateway is not None:
        app.state.gateway = gateway

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(BaseHTTPMiddleware, dispatch=metrics_middleware)

    _register_error_handlers(app)

    app.include_router(health_router)
    app.include_router(jobs_router)

    instrument_fastapi(app)

    return app


def run() -> None:
    """Run the API server."""
    settings = get_settings()

    uvicorn.run(
        "cmdqueue.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    run()
