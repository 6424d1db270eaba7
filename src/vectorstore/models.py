"""Vector store data models."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.filters.expressions import FilterExpression


class StoreState(str, Enum):
    """Lifecycle of a store instance. Transitions only move forward."""

    UNINITIALIZED = "uninitialized"
    SCHEMA_READY = "schema_ready"
    OPERATIONAL = "operational"


class SearchRequest(BaseModel):
    """A similarity search.

    Attributes:
        query: Text to embed when no query vector is supplied.
        query_vector: Precomputed query embedding.
        top_k: Maximum number of results requested from the backend; the
            store's ``default_top_k`` when unset.
        similarity_threshold: Minimum score of returned documents.
        filter: Metadata filter, as a tree or in the portable text grammar.
    """

    model_config = ConfigDict(frozen=True)

    query: str = Field(default="", description="Query text")
    query_vector: list[float] | None = Field(
        default=None,
        description="Precomputed query embedding",
    )
    top_k: int | None = Field(default=None, description="Maximum results")
    similarity_threshold: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Minimum similarity score",
    )
    filter: FilterExpression | str | None = Field(
        default=None,
        description="Metadata filter expression",
    )


class RecordFailure(BaseModel):
    """A document that could not be stored.

    Attributes:
        document_id: Id of the failed document.
        error: Reason reported by the mapper or the backend.
        batch_index: Zero-based index of the batch the document was in.
    """

    document_id: str = Field(description="Failed document id")
    error: str = Field(description="Failure reason")
    batch_index: int = Field(description="Batch index")


class IngestionResult(BaseModel):
    """Outcome of an ``add`` call across all batches.

    Attributes:
        total: Number of documents submitted.
        succeeded: Ids of stored documents, in input order.
        failures: Documents that were not stored.
        batches: Number of import requests issued.
    """

    total: int = Field(default=0, description="Documents submitted")
    succeeded: list[str] = Field(default_factory=list, description="Stored ids")
    failures: list[RecordFailure] = Field(
        default_factory=list,
        description="Per-document failures",
    )
    batches: int = Field(default=0, description="Import requests issued")

    @property
    def ok(self) -> bool:
        """Whether every document was stored."""
        return not self.failures

    def summary(self) -> dict[str, Any]:
        """Counts for logging."""
        return {
            "total": self.total,
            "succeeded": len(self.succeeded),
            "failed": len(self.failures),
            "batches": self.batches,
        }
