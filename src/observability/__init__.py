"""Prometheus instrumentation."""

from src.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    get_metrics_content_type,
    set_store_ready,
    track_embedding_request,
    track_import_batch,
    track_ingestion,
    track_search_results,
    track_vectorstore_operation,
)

__all__ = [
    "MetricsMiddleware",
    "get_metrics",
    "get_metrics_content_type",
    "set_store_ready",
    "track_embedding_request",
    "track_import_batch",
    "track_ingestion",
    "track_search_results",
    "track_vectorstore_operation",
]
