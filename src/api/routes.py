"""API routes for vector store operations."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from src.documents.models import Document, MetadataValue
from src.logging_config import get_logger
from src.vectorstore.models import SearchRequest
from src.vectorstore.service import VectorStore

logger = get_logger(__name__)


router = APIRouter(prefix="/api/v1", tags=["Vector Store"])


class DocumentIn(BaseModel):
    """A document submitted for ingestion."""

    id: str | None = Field(default=None, description="Document id (generated if absent)")
    content: str = Field(description="Document content")
    metadata: dict[str, MetadataValue] = Field(
        default_factory=dict,
        description="Document metadata",
    )
    embedding: list[float] | None = Field(
        default=None,
        description="Precomputed embedding",
    )


class IngestRequest(BaseModel):
    """Request body for document ingestion."""

    documents: list[DocumentIn] = Field(min_length=1, description="Documents to store")


class IngestResponse(BaseModel):
    """Response from document ingestion."""

    success: bool = Field(description="Whether every document was stored")
    ingested: list[str] = Field(description="Ids of stored documents")
    batches: int = Field(description="Import requests issued")


class DeleteRequest(BaseModel):
    """Request body for document deletion."""

    ids: list[str] = Field(min_length=1, description="Document ids to delete")


class DeleteResponse(BaseModel):
    """Response from document deletion."""

    deleted: int = Field(description="Number of documents deleted")


class SearchBody(BaseModel):
    """Request body for similarity search."""

    query: str = Field(default="", description="Query text")
    query_vector: list[float] | None = Field(default=None, description="Query embedding")
    top_k: int | None = Field(
        default=None,
        ge=1,
        le=250,
        description="Maximum results; the configured default when omitted",
    )
    similarity_threshold: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Minimum similarity score",
    )
    filter: str | None = Field(
        default=None,
        description="Metadata filter in the portable grammar",
    )


class SearchResponse(BaseModel):
    """Response from similarity search."""

    results: list[dict[str, Any]] = Field(description="Scored documents, best first")


def get_store(request: Request) -> VectorStore:
    """Resolve the store configured on the application."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        logger.warning("Vector store not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "Vector store not configured",
                "message": "The store requires an embedding service and a Typesense backend",
            },
        )
    return store


@router.post("/documents", response_model=IngestResponse)
async def ingest_endpoint(
    body: IngestRequest,
    store: VectorStore = Depends(get_store),
) -> IngestResponse:
    """Ingest documents. Partial failures are reported as 207 by the error handler."""
    result = await store.add(to_documents(body))
    return IngestResponse(success=True, ingested=result.succeeded, batches=result.batches)


@router.delete("/documents", response_model=DeleteResponse)
async def delete_endpoint(
    body: DeleteRequest,
    store: VectorStore = Depends(get_store),
) -> DeleteResponse:
    """Delete documents by id."""
    deleted = await store.delete(body.ids)
    return DeleteResponse(deleted=deleted)


@router.post("/search", response_model=SearchResponse)
async def search_endpoint(
    body: SearchBody,
    store: VectorStore = Depends(get_store),
) -> SearchResponse:
    """Run a similarity search."""
    results = await store.similarity_search(to_search_request(body))
    return SearchResponse(results=[r.to_dict() for r in results])


def to_documents(body: IngestRequest) -> list[Document]:
    """Convert API documents to domain documents."""
    documents: list[Document] = []
    for item in body.documents:
        fields = item.model_dump(exclude_none=True)
        documents.append(Document(**fields))
    return documents


def to_search_request(body: SearchBody) -> SearchRequest:
    """Convert an API search body to a domain search request."""
    return SearchRequest(
        query=body.query,
        query_vector=body.query_vector,
        top_k=body.top_k,
        similarity_threshold=body.similarity_threshold,
        filter=body.filter,
    )
