"""FastAPI application entry point.

Configures the application with logging, exception handling, metrics and
health checks.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from src import __version__
from src.api.routes import router
from src.config import get_settings
from src.embeddings.service import HTTPEmbeddingService
from src.exceptions import ErrorCode, StoreError
from src.logging_config import get_logger, setup_logging
from src.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    get_metrics_content_type,
)
from src.vectorstore.models import StoreState
from src.vectorstore.service import create_store

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Builds the store on startup and closes its clients on shutdown. The
    schema is ensured lazily by the first operation.
    """
    settings = get_settings()
    setup_logging(level=settings.log_level)
    logger.info(
        "Starting vector store API",
        extra={
            "version": __version__,
            "environment": settings.environment.value,
            "collection": settings.vector_store.collection_name,
        },
    )

    embedding_service = HTTPEmbeddingService(settings=settings.embedding)
    store = create_store(embedding_service)
    app.state.store = store

    yield

    logger.info("Shutting down vector store API")
    await store.close()
    await embedding_service.close()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Typesense Vector Store",
        description="Vector store with portable metadata filters",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )

    app.add_middleware(MetricsMiddleware)
    app.add_exception_handler(StoreError, store_exception_handler)

    app.add_api_route("/health", health_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/health/ready", readiness_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/health/live", liveness_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], tags=["Metrics"])
    app.include_router(router)

    return app


async def store_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle StoreError exceptions.

    Converts exceptions to structured JSON responses.
    """
    if not isinstance(exc, StoreError):
        return JSONResponse(
            status_code=500,
            content={"error": {"code": "VS-1000", "message": str(exc), "details": {}}},
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
        status_code=get_status_code(exc.code),
        content=exc.to_dict(),
    )


_STATUS_CODES: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.FILTER_SYNTAX_ERROR: 400,
    ErrorCode.FILTER_UNKNOWN_FIELD: 400,
    ErrorCode.FILTER_INVALID_VALUE: 400,
    ErrorCode.DOCUMENT_MAPPING_ERROR: 400,
    ErrorCode.SCHEMA_MISSING: 404,
    ErrorCode.SCHEMA_CONFLICT: 409,
    ErrorCode.COLLECTION_EXISTS: 409,
    ErrorCode.PARTIAL_INGESTION: 207,
    ErrorCode.EMBEDDING_SERVICE_ERROR: 502,
    ErrorCode.EMBEDDING_DIMENSION_MISMATCH: 502,
    ErrorCode.TRANSPORT_ERROR: 502,
    ErrorCode.BACKEND_REJECTED: 502,
    ErrorCode.STORE_NOT_CONFIGURED: 503,
}


def get_status_code(code: ErrorCode) -> int:
    """Map an error code to an HTTP status code."""
    return _STATUS_CODES.get(code, 500)


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
    """Kubernetes readiness check.

    Ready once the store has verified its collection schema.
    """
    store = getattr(request.app.state, "store", None)
    checks: dict[str, str] = {
        "config": "ok",
        "store": "ok" if store is not None else "missing",
    }
    if store is not None:
        state = getattr(store, "state", StoreState.OPERATIONAL)
        checks["schema"] = "ok" if state == StoreState.OPERATIONAL else state.value

    all_ok = all(v == "ok" for v in checks.values())

    return {
        "status": "ready" if all_ok else "not_ready",
        "checks": checks,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def liveness_check() -> dict[str, str]:
    """Kubernetes liveness check.

    Returns:
        Liveness status.
    """
    return {"status": "alive"}


async def metrics_endpoint() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=get_metrics(), media_type=get_metrics_content_type())


# Create the application instance
app = create_app()


# Run with: python -m src.api.app
if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )
