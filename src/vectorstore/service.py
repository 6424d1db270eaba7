"""Vector store interface and Typesense implementation."""

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Sequence

from src.config import TypesenseSettings, VectorStoreSettings, get_settings
from src.documents.models import Document, ScoredDocument
from src.embeddings.service import EmbeddingService
from src.exceptions import ConfigurationError, ErrorCode, FilterValueError, StoreError
from src.filters.translator import FilterTranslator, TypesenseFilterTranslator
from src.logging_config import get_logger
from src.observability.metrics import set_store_ready, track_vectorstore_operation
from src.schema import ID_FIELD, CollectionSchema
from src.vectorstore.batcher import IngestionBatcher
from src.vectorstore.client import BackendClient, TypesenseClient
from src.vectorstore.mapper import DocumentMapper
from src.vectorstore.models import IngestionResult, SearchRequest, StoreState
from src.vectorstore.schema_manager import SchemaManager
from src.vectorstore.search import SearchOrchestrator

logger = get_logger(__name__)


class VectorStore(ABC):
    """Abstract base class for vector stores.

    Defines the portable surface: ingestion, deletion and similarity search.
    """

    @abstractmethod
    async def add(self, documents: Sequence[Document]) -> IngestionResult:
        """Store documents, computing embeddings where missing.

        Raises:
            PartialIngestionError: If any document was not stored.
        """
        ...

    @abstractmethod
    async def delete(self, ids: Sequence[str]) -> int:
        """Delete documents by id.

        Returns:
            Number of documents deleted.
        """
        ...

    @abstractmethod
    async def similarity_search(self, request: SearchRequest) -> list[ScoredDocument]:
        """Return the documents most similar to the request, best first."""
        ...

    @abstractmethod
    def get_native_client(self) -> BackendClient | None:
        """The backend client used internally, for backend-specific calls."""
        ...


class TypesenseVectorStore(VectorStore):
    """Vector store backed by a Typesense collection.

    The collection schema is ensured on first use (or by calling
    ``initialize``). State moves UNINITIALIZED -> SCHEMA_READY -> OPERATIONAL
    and never back; a failed operation is reported to its caller only.
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        settings: VectorStoreSettings | None = None,
        client: BackendClient | None = None,
        typesense_settings: TypesenseSettings | None = None,
        translator: FilterTranslator | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            embedding_service: Embeds document content and queries.
            settings: Store configuration.
            client: Backend client; a TypesenseClient is created when omitted.
            typesense_settings: Connection settings for the created client.
            translator: Filter translator for the backend.
        """
        self._settings = settings or get_settings().vector_store
        self._embedding_service = embedding_service
        self._client = client
        self._owns_client = client is None
        self._typesense_settings = typesense_settings
        self._translator = translator or TypesenseFilterTranslator()

        self._state = StoreState.UNINITIALIZED
        self._schema_manager: SchemaManager | None = None
        self._mapper: DocumentMapper | None = None
        self._batcher: IngestionBatcher | None = None
        self._search: SearchOrchestrator | None = None
        self._init_lock = asyncio.Lock()

    @property
    def state(self) -> StoreState:
        """Current lifecycle state."""
        return self._state

    @property
    def schema(self) -> CollectionSchema | None:
        """The verified collection schema, once initialized."""
        if self._schema_manager is None:
            return None
        return self._schema_manager.schema

    @property
    def settings(self) -> VectorStoreSettings:
        """Store configuration."""
        return self._settings

    def _get_client(self) -> BackendClient:
        if self._client is None:
            self._client = TypesenseClient(settings=self._typesense_settings)
        return self._client

    def get_native_client(self) -> BackendClient | None:
        """Return the same client instance used internally, if created."""
        return self._client

    async def initialize(self) -> CollectionSchema:
        """Ensure the schema and wire the store's components.

        Safe to call concurrently and repeatedly.

        Raises:
            SchemaMissingError: If the collection is absent and may not be created.
            SchemaConflictError: If the collection is incompatible.
        """
        async with self._init_lock:
            if self._state == StoreState.OPERATIONAL and self.schema is not None:
                return self.schema

            client = self._get_client()
            if self._schema_manager is None:
                self._schema_manager = SchemaManager(client, self._settings)

            start = time.perf_counter()
            success = False
            try:
                schema = await self._schema_manager.ensure_schema()
                success = True
            finally:
                track_vectorstore_operation(
                    "ensure_schema", time.perf_counter() - start, success
                )
            self._state = StoreState.SCHEMA_READY

            self._mapper = DocumentMapper(schema, self._embedding_service, self._settings)
            self._batcher = IngestionBatcher(
                client,
                self._mapper,
                schema.name,
                self._settings.batch_size,
            )
            self._search = SearchOrchestrator(
                client,
                schema,
                self._mapper,
                self._translator,
                self._embedding_service,
                native_threshold=self._settings.native_similarity_threshold,
                default_top_k=self._settings.default_top_k,
            )
            self._state = StoreState.OPERATIONAL
            set_store_ready(schema.name)

            logger.info(
                f"Vector store ready: {schema.name}",
                extra={
                    "dimension": schema.embedding_dimension,
                    "batch_size": self._settings.batch_size,
                    "threshold_mode": self._search.threshold_mode,
                    "dynamic_fields": schema.allows_dynamic_fields,
                },
            )
            return schema

    async def _ensure_operational(
        self,
    ) -> tuple[CollectionSchema, IngestionBatcher, SearchOrchestrator]:
        if self._state != StoreState.OPERATIONAL:
            await self.initialize()
        schema = self.schema
        if schema is None or self._batcher is None or self._search is None:
            raise StoreError(
                "Vector store is not operational",
                ErrorCode.INTERNAL_ERROR,
                {"state": self._state.value},
            )
        return schema, self._batcher, self._search

    async def add(self, documents: Sequence[Document]) -> IngestionResult:
        """Store documents in batches.

        Raises:
            PartialIngestionError: If any document was not stored.
            EmbeddingError: If embedding fails.
        """
        if not documents:
            return IngestionResult()

        _, batcher, _ = await self._ensure_operational()

        start = time.perf_counter()
        success = False
        try:
            result = await batcher.add(documents)
            success = True
            return result
        finally:
            track_vectorstore_operation("add", time.perf_counter() - start, success)

    async def delete(self, ids: Sequence[str]) -> int:
        """Delete documents by id.

        Raises:
            FilterValueError: If an id is empty or contains a backtick.
            TransportError: If the backend call fails.
        """
        if not ids:
            return 0

        for doc_id in ids:
            if not doc_id or "`" in doc_id:
                raise FilterValueError(
                    f"Document id {doc_id!r} cannot be quoted in a filter",
                    ID_FIELD,
                    doc_id,
                )

        schema, _, _ = await self._ensure_operational()

        quoted = ",".join(f"`{doc_id}`" for doc_id in ids)
        filter_by = f"{ID_FIELD}:[{quoted}]"
        start = time.perf_counter()
        success = False
        try:
            deleted = await self._get_client().delete_documents(schema.name, filter_by)
            success = True
        finally:
            track_vectorstore_operation("delete", time.perf_counter() - start, success)

        logger.debug(
            f"Deleted {deleted} documents",
            extra={"collection": schema.name, "requested": len(ids)},
        )
        return deleted

    async def similarity_search(self, request: SearchRequest) -> list[ScoredDocument]:
        """Return documents most similar to the request, best first.

        Raises:
            ValidationError: If ``top_k`` is not positive or the filter is invalid.
            EmbeddingError: If the query cannot be embedded.
            TransportError: If the backend query fails.
        """
        _, _, search = await self._ensure_operational()

        start = time.perf_counter()
        success = False
        try:
            results = await search.similarity_search(request)
            success = True
            return results
        finally:
            track_vectorstore_operation("search", time.perf_counter() - start, success)

    async def close(self) -> None:
        """Close the backend client if this store created it."""
        if self._owns_client and self._client is not None:
            await self._client.close()


def create_store(
    embedding_service: EmbeddingService,
    client: BackendClient | None = None,
) -> TypesenseVectorStore:
    """Build a store from application settings.

    Raises:
        ConfigurationError: If the settings cannot be loaded.
    """
    try:
        settings = get_settings()
    except ValueError as e:
        raise ConfigurationError(f"Invalid vector store configuration: {e}") from e
    return TypesenseVectorStore(
        embedding_service=embedding_service,
        settings=settings.vector_store,
        client=client,
        typesense_settings=settings.typesense,
    )
