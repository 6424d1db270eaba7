"""Prometheus metrics for the vector store.

Covers HTTP traffic, embedding calls and the store's own operations:
schema checks, batched ingestion, deletion and similarity search.
"""

import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from src.logging_config import get_logger

logger = get_logger(__name__)

# HTTP
HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status_code"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

HTTP_REQUEST_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

# Embedding service
EMBEDDING_REQUEST_DURATION = Histogram(
    "embedding_request_duration_seconds",
    "Embedding request duration in seconds",
    ["model", "status"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)

EMBEDDING_TEXTS_TOTAL = Counter(
    "embedding_texts_total",
    "Texts sent to the embedding service",
    ["model", "status"],
)

EMBEDDING_BATCH_SIZE = Histogram(
    "embedding_batch_size",
    "Texts per embedding request",
    ["model"],
    buckets=[1, 5, 10, 25, 50, 100, 250, 500],
)

# Vector store
VECTORSTORE_READY = Gauge(
    "vectorstore_ready",
    "1 once the collection schema has been verified",
    ["collection"],
)

VECTORSTORE_OPERATION_DURATION = Histogram(
    "vectorstore_operation_duration_seconds",
    "Vector store operation duration",
    ["operation", "status"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)

VECTORSTORE_DOCUMENTS_INGESTED = Counter(
    "vectorstore_documents_ingested_total",
    "Documents submitted for ingestion",
    ["status"],
)

VECTORSTORE_IMPORT_BATCH_SIZE = Histogram(
    "vectorstore_import_batch_size",
    "Records per import request",
    buckets=[1, 5, 10, 25, 50, 100, 250, 500, 1000],
)

VECTORSTORE_SEARCH_RESULTS = Histogram(
    "vectorstore_search_results_returned",
    "Documents returned per similarity search",
    buckets=[0, 1, 2, 3, 5, 10, 20, 50, 100],
)

VECTORSTORE_TOP_SCORE = Histogram(
    "vectorstore_search_top_score",
    "Best similarity score per search",
    buckets=[0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0],
)


def _status(success: bool) -> str:
    return "success" if success else "error"


class MetricsMiddleware(BaseHTTPMiddleware):
    """Records latency and count of every HTTP request except /metrics."""

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        labels = {
            "method": request.method,
            "endpoint": self._normalize_endpoint(request.url.path),
            "status_code": response.status_code,
        }
        HTTP_REQUEST_DURATION.labels(**labels).observe(duration)
        HTTP_REQUEST_TOTAL.labels(**labels).inc()

        return response

    def _normalize_endpoint(self, path: str) -> str:
        """Collapse paths to their route family to bound label cardinality."""
        if path.startswith("/health"):
            return "/health"
        if path.startswith("/api/v1/"):
            parts = path.split("/")
            if len(parts) >= 4:
                return f"/api/v1/{parts[3]}"
        return path


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST


def track_embedding_request(
    model: str,
    duration: float,
    batch_size: int,
    success: bool = True,
) -> None:
    """Track one request to the embedding service.

    Args:
        model: Embedding model name.
        duration: Request duration in seconds.
        batch_size: Number of texts in the request.
        success: Whether the request succeeded.
    """
    status = _status(success)
    EMBEDDING_REQUEST_DURATION.labels(model=model, status=status).observe(duration)
    EMBEDDING_TEXTS_TOTAL.labels(model=model, status=status).inc(batch_size)
    EMBEDDING_BATCH_SIZE.labels(model=model).observe(batch_size)


def set_store_ready(collection: str, ready: bool = True) -> None:
    """Flag whether the store has verified ``collection``."""
    VECTORSTORE_READY.labels(collection=collection).set(1 if ready else 0)


def track_vectorstore_operation(
    operation: str,
    duration: float,
    success: bool = True,
) -> None:
    """Track a vector store operation.

    Args:
        operation: One of add, search, delete, ensure_schema.
        duration: Operation duration in seconds.
        success: Whether the operation succeeded.
    """
    VECTORSTORE_OPERATION_DURATION.labels(
        operation=operation,
        status=_status(success),
    ).observe(duration)


def track_import_batch(size: int) -> None:
    VECTORSTORE_IMPORT_BATCH_SIZE.observe(size)


def track_ingestion(succeeded: int, failed: int) -> None:
    """Count stored and rejected documents of one ``add`` call."""
    if succeeded:
        VECTORSTORE_DOCUMENTS_INGESTED.labels(status="success").inc(succeeded)
    if failed:
        VECTORSTORE_DOCUMENTS_INGESTED.labels(status="failure").inc(failed)


def track_search_results(results_returned: int, top_score: float) -> None:
    """Track how many documents a search returned and the best score."""
    VECTORSTORE_SEARCH_RESULTS.observe(results_returned)
    if results_returned:
        VECTORSTORE_TOP_SCORE.observe(top_score)
