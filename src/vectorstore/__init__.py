"""Vector store module."""

from src.vectorstore.batcher import IngestionBatcher
from src.vectorstore.client import BackendClient, TypesenseClient
from src.vectorstore.mapper import DocumentMapper
from src.vectorstore.models import (
    IngestionResult,
    RecordFailure,
    SearchRequest,
    StoreState,
)
from src.vectorstore.schema_manager import SchemaManager
from src.vectorstore.search import SearchOrchestrator
from src.vectorstore.service import TypesenseVectorStore, VectorStore, create_store

__all__ = [
    "BackendClient",
    "DocumentMapper",
    "IngestionBatcher",
    "IngestionResult",
    "RecordFailure",
    "SchemaManager",
    "SearchOrchestrator",
    "SearchRequest",
    "StoreState",
    "TypesenseClient",
    "TypesenseVectorStore",
    "VectorStore",
    "create_store",
]
