"""Document model module."""

from src.documents.models import Document, MetadataValue, ScoredDocument, generate_id

__all__ = [
    "Document",
    "MetadataValue",
    "ScoredDocument",
    "generate_id",
]
