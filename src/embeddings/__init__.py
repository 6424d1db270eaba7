"""Text embedding clients used for documents and search queries."""

from src.embeddings.models import EmbeddingResult
from src.embeddings.service import EmbeddingService, HTTPEmbeddingService

__all__ = [
    "EmbeddingResult",
    "EmbeddingService",
    "HTTPEmbeddingService",
]
