"""FastAPI application entry point.

Configures the application with logging, exception handling, metrics
and health checks, and builds the changelog index on startup.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from changelog_index import __version__
from changelog_index.api.routes import router
from changelog_index.config import get_settings
from changelog_index.exceptions import ChangelogIndexError, ErrorCode
from changelog_index.indexing.coordinator import build_changelog_index
from changelog_index.logging_config import get_logger, setup_logging
from changelog_index.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    get_metrics_content_type,
)

logger = get_logger(__name__)

_STATUS_CODES = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.SOURCE_PARSE_ERROR: 400,
    ErrorCode.DIMENSION_MISMATCH: 409,
    ErrorCode.MALFORMED_VECTOR: 422,
    ErrorCode.SOURCE_UNAVAILABLE: 502,
    ErrorCode.EMBEDDING_UNAVAILABLE: 502,
    ErrorCode.EMBEDDING_MALFORMED: 502,
    ErrorCode.STORE_UNAVAILABLE: 503,
    ErrorCode.EMBEDDING_TIMEOUT: 504,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Builds the changelog index on startup and closes it on shutdown.
    """
    settings = get_settings()
    setup_logging(level=settings.log_level)
    logger.info(
        "Starting Changelog Index",
        extra={
            "version": __version__,
            "environment": settings.environment.value,
            "vector_backend": settings.vector_backend.value,
        },
    )

    index = build_changelog_index(settings)
    app.state.changelog_index = index

    yield

    logger.info("Shutting down Changelog Index")
    await index.close()
    app.state.changelog_index = None


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Changelog Index",
        description="Semantic search over previously published changelogs",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )

    app.add_middleware(MetricsMiddleware)
    app.add_exception_handler(ChangelogIndexError, index_exception_handler)

    app.add_api_route("/health", health_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/health/ready", readiness_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/health/live", liveness_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], tags=["Metrics"])
    app.include_router(router)

    return app


async def index_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle ChangelogIndexError exceptions.

    Converts exceptions to structured JSON responses.
    """
    if not isinstance(exc, ChangelogIndexError):
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": ErrorCode.INTERNAL_ERROR.value,
                    "message": str(exc),
                    "details": {},
                }
            },
        )

    logger.error(
        f"Request failed: {exc.message}",
        extra={
            "error_code": exc.code.value,
            "path": request.url.path,
            "details": exc.details,
        },
    )

    return JSONResponse(
        status_code=_get_status_code(exc.code),
        content=exc.to_dict(),
    )


def _get_status_code(error_code: ErrorCode) -> int:
    """Map error code to HTTP status code."""
    return _STATUS_CODES.get(error_code, 500)


async def health_check() -> dict[str, Any]:
    """Basic health check endpoint.

    Returns:
        Health status with version and timestamp.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def readiness_check(request: Request) -> dict[str, Any]:
    """Readiness probe.

    Reports whether the changelog index has been built.

    Returns:
        Readiness status with component checks.
    """
    checks: dict[str, str] = {
        "config": "ok",
        "index": "ok"
        if getattr(request.app.state, "changelog_index", None) is not None
        else "not_configured",
    }

    all_ok = all(v == "ok" for v in checks.values())

    return {
        "status": "ready" if all_ok else "not_ready",
        "checks": checks,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def liveness_check() -> dict[str, str]:
    """Liveness probe.

    Simple check that the service is running.

    Returns:
        Liveness status.
    """
    return {"status": "alive"}


async def metrics_endpoint() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=get_metrics(), media_type=get_metrics_content_type())


# Create the application instance
app = create_app()
