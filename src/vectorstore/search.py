"""Similarity search against the backend collection."""

from typing import Any

from src.documents.models import ScoredDocument
from src.embeddings.service import EmbeddingService
from src.exceptions import ErrorCode, ValidationError
from src.filters.parser import parse_filter
from src.filters.translator import FilterTranslator
from src.logging_config import get_logger
from src.observability.metrics import track_search_results
from src.schema import EMBEDDING_FIELD, CollectionSchema
from src.vectorstore.client import BackendClient
from src.vectorstore.mapper import DocumentMapper
from src.vectorstore.models import SearchRequest

logger = get_logger(__name__)


def format_vector_query(
    vector: list[float],
    k: int,
    distance_threshold: float | None = None,
) -> str:
    """Build a Typesense ``vector_query`` parameter."""
    values = ",".join(repr(float(v)) for v in vector)
    options = f"k:{k}"
    if distance_threshold is not None:
        options += f", distance_threshold:{distance_threshold!r}"
    return f"{EMBEDDING_FIELD}:([{values}], {options})"


class SearchOrchestrator:
    """Runs similarity searches.

    Args:
        client: Backend client.
        schema: Verified collection schema, used for filter validation.
        mapper: Converts hits into scored documents.
        translator: Converts filters into backend syntax.
        embedding_service: Embeds query text.
        native_threshold: Send the threshold to the backend as well. The
            client-side cutoff always runs, so results are the same either
            way; only the number of hits transferred differs.
    """

    def __init__(
        self,
        client: BackendClient,
        schema: CollectionSchema,
        mapper: DocumentMapper,
        translator: FilterTranslator,
        embedding_service: EmbeddingService,
        native_threshold: bool = False,
        default_top_k: int = 4,
    ) -> None:
        self._client = client
        self._schema = schema
        self._mapper = mapper
        self._translator = translator
        self._embedding_service = embedding_service
        self._native_threshold = native_threshold
        self._default_top_k = default_top_k

    @property
    def threshold_mode(self) -> str:
        """``"native"`` or ``"client"``."""
        return "native" if self._native_threshold else "client"

    async def similarity_search(self, request: SearchRequest) -> list[ScoredDocument]:
        """Return documents most similar to the request, best first.

        Fewer than ``top_k`` results are returned when the threshold removes
        hits. A request without ``top_k`` uses the configured default.

        Raises:
            ValidationError: If ``top_k`` is not positive or the filter is invalid.
            EmbeddingError: If the query cannot be embedded.
            TransportError: If the backend query fails.
        """
        top_k = self._default_top_k if request.top_k is None else request.top_k
        if top_k <= 0:
            raise ValidationError(
                f"top_k must be positive, got {top_k}",
                code=ErrorCode.VALIDATION_ERROR,
                details={"top_k": top_k},
            )

        filter_by = self._filter_by(request)
        vector = await self._query_vector(request)
        params = self._build_params(request, top_k, vector, filter_by)

        hits = await self._client.search(self._schema.name, params)
        scored = [self._mapper.from_hit(hit) for hit in hits]
        results = [s for s in scored if s.score >= request.similarity_threshold]

        track_search_results(
            results_returned=len(results),
            top_score=results[0].score if results else 0.0,
        )
        logger.debug(
            f"Search returned {len(results)} of {len(hits)} hits",
            extra={
                "collection": self._schema.name,
                "top_k": top_k,
                "threshold": request.similarity_threshold,
            },
        )
        return results

    async def _query_vector(self, request: SearchRequest) -> list[float]:
        if request.query_vector:
            vector = list(request.query_vector)
        else:
            if not request.query.strip():
                raise ValidationError(
                    "Search needs a query or a query vector",
                    details={"query": request.query},
                )
            result = await self._embedding_service.embed(request.query)
            vector = result.embedding

        if len(vector) != self._schema.embedding_dimension:
            raise ValidationError(
                f"Query vector has {len(vector)} dimensions, "
                f"expected {self._schema.embedding_dimension}",
                details={
                    "expected": self._schema.embedding_dimension,
                    "actual": len(vector),
                },
            )
        return vector

    def _filter_by(self, request: SearchRequest) -> str | None:
        if request.filter is None:
            return None
        expr = (
            parse_filter(request.filter)
            if isinstance(request.filter, str)
            else request.filter
        )
        return self._translator.translate(expr, self._schema)

    def _build_params(
        self,
        request: SearchRequest,
        top_k: int,
        vector: list[float],
        filter_by: str | None,
    ) -> dict[str, Any]:
        distance_threshold = None
        if self._native_threshold and request.similarity_threshold > 0:
            distance_threshold = 1.0 - request.similarity_threshold

        params: dict[str, Any] = {
            "q": "*",
            "vector_query": format_vector_query(vector, top_k, distance_threshold),
            "per_page": top_k,
            "exclude_fields": EMBEDDING_FIELD,
        }

        if filter_by is not None:
            params["filter_by"] = filter_by

        return params
