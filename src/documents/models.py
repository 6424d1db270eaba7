"""Document data models."""

from typing import Any, Union
from uuid import uuid4

from pydantic import BaseModel, Field

MetadataValue = Union[
    bool, int, float, str, list[bool], list[int], list[float], list[str]
]


def generate_id() -> str:
    """Generate a new document identifier."""
    return str(uuid4())


class Document(BaseModel):
    """A document with content, metadata and an optional embedding.

    Attributes:
        id: Unique identifier, generated when not supplied.
        content: The text content of the document.
        metadata: Scalar or string-list metadata values.
        embedding: Precomputed embedding; computed on ingestion when absent.
    """

    id: str = Field(default_factory=generate_id, description="Document identifier")
    content: str = Field(description="Text content of the document")
    metadata: dict[str, MetadataValue] = Field(
        default_factory=dict,
        description="Document metadata",
    )
    embedding: list[float] | None = Field(
        default=None,
        description="Embedding vector",
    )

    @property
    def has_embedding(self) -> bool:
        """Whether a non-empty embedding is attached."""
        return bool(self.embedding)


class ScoredDocument(BaseModel):
    """A document returned by a similarity search.

    Attributes:
        document: The stored document, without its embedding.
        score: Similarity in [0, 1], higher is more similar.
    """

    document: Document = Field(description="Matched document")
    score: float = Field(ge=0.0, le=1.0, description="Similarity score")

    def to_dict(self) -> dict[str, Any]:
        """Flatten into a JSON-friendly dict."""
        return {
            "id": self.document.id,
            "content": self.document.content,
            "metadata": self.document.metadata,
            "score": self.score,
        }
