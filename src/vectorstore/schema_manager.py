"""Collection schema provisioning and validation."""

import asyncio

from src.config import VectorStoreSettings
from src.exceptions import (
    ErrorCode,
    SchemaConflictError,
    SchemaMissingError,
    TransportError,
)
from src.logging_config import get_logger
from src.schema import (
    CONTENT_FIELD,
    EMBEDDING_FIELD,
    CollectionSchema,
    FieldType,
    build_schema,
)
from src.vectorstore.client import BackendClient

logger = get_logger(__name__)


class SchemaManager:
    """Ensures the configured collection exists with a compatible schema.

    The verified schema is cached; later calls return it without touching
    the backend.
    """

    def __init__(self, client: BackendClient, settings: VectorStoreSettings) -> None:
        self._client = client
        self._settings = settings
        self._schema: CollectionSchema | None = None
        self._lock = asyncio.Lock()

    @property
    def schema(self) -> CollectionSchema | None:
        """The cached schema, once ensured."""
        return self._schema

    def desired_schema(self) -> CollectionSchema:
        """Schema that would be created from the current configuration."""
        return build_schema(
            name=self._settings.collection_name,
            embedding_dimension=self._settings.embedding_dimension,
            metadata_fields=self._settings.metadata_fields,
            allow_dynamic_fields=self._settings.allow_dynamic_fields,
        )

    async def ensure_schema(self) -> CollectionSchema:
        """Return the collection schema, creating the collection if allowed.

        Returns:
            The verified schema.

        Raises:
            SchemaMissingError: If the collection is absent and
                ``initialize_schema`` is disabled.
            SchemaConflictError: If the existing collection is incompatible.
            TransportError: If the backend cannot be reached.
        """
        if self._schema is not None:
            return self._schema

        async with self._lock:
            if self._schema is not None:
                return self._schema

            name = self._settings.collection_name
            payload = await self._client.get_collection(name)

            if payload is None:
                if not self._settings.initialize_schema:
                    raise SchemaMissingError(name)
                schema = await self._create(name)
            else:
                schema = self._validate(payload)
                logger.info(
                    f"Verified collection schema: {name}",
                    extra={"dimension": schema.embedding_dimension},
                )

            self._schema = schema
            return schema

    async def _create(self, name: str) -> CollectionSchema:
        desired = self.desired_schema()
        try:
            await self._client.create_collection(desired.to_payload())
        except TransportError as e:
            if e.code != ErrorCode.COLLECTION_EXISTS:
                raise
            # Another caller created it between our read and write.
            logger.info(f"Collection created concurrently: {name}")
            payload = await self._client.get_collection(name)
            if payload is None:
                raise
            return self._validate(payload)

        logger.info(
            f"Created collection: {name}",
            extra={
                "dimension": desired.embedding_dimension,
                "fields": [f.name for f in desired.fields],
            },
        )
        return desired

    def _validate(self, payload: dict) -> CollectionSchema:
        name = self._settings.collection_name
        try:
            schema = CollectionSchema.from_payload(payload)
        except (KeyError, ValueError) as e:
            raise SchemaConflictError(
                f"Collection {name} is not a vector collection: {e}",
                details={"collection": name},
            ) from e

        expected = self._settings.embedding_dimension
        if schema.embedding_dimension != expected:
            raise SchemaConflictError(
                f"Collection {name} has embedding dimension "
                f"{schema.embedding_dimension}, configured {expected}",
                details={
                    "collection": name,
                    "expected_dimension": expected,
                    "actual_dimension": schema.embedding_dimension,
                },
            )

        content = schema.get_field(CONTENT_FIELD)
        if content is None or content.type not in (
            FieldType.STRING,
            FieldType.STRING_AUTO,
            FieldType.AUTO,
        ):
            raise SchemaConflictError(
                f"Collection {name} has no string '{CONTENT_FIELD}' field",
                details={"collection": name},
            )

        embedding = schema.get_field(EMBEDDING_FIELD)
        if embedding is None or embedding.type != FieldType.FLOAT_VECTOR:
            raise SchemaConflictError(
                f"Collection {name} field '{EMBEDDING_FIELD}' is not a float vector",
                details={"collection": name},
            )

        return schema
