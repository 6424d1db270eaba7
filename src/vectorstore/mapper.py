"""Conversion between documents and backend records."""

from typing import Any

from src.config import UnknownMetadataPolicy, VectorStoreSettings
from src.documents.models import Document, MetadataValue, ScoredDocument, generate_id
from src.embeddings.service import EmbeddingService
from src.exceptions import DocumentMappingError, EmbeddingError, ErrorCode
from src.logging_config import get_logger
from src.schema import (
    CONTENT_FIELD,
    EMBEDDING_FIELD,
    ID_FIELD,
    RESERVED_FIELDS,
    CollectionSchema,
    FieldSpec,
    FieldType,
)

logger = get_logger(__name__)

_TRUE = {"true", "1", "yes"}
_FALSE = {"false", "0", "no"}

# Passed through untouched; the backend validates their structure.
_STORED_AS_GIVEN = frozenset(
    {
        FieldType.AUTO,
        FieldType.GEOPOINT,
        FieldType.GEOPOINT_ARRAY,
        FieldType.OBJECT,
        FieldType.OBJECT_ARRAY,
        FieldType.IMAGE,
    }
)


class DocumentMapper:
    """Maps documents onto the collection schema and search hits back.

    Args:
        schema: Verified collection schema.
        embedding_service: Used for documents without an embedding.
        settings: Supplies the unknown-metadata policy.
    """

    def __init__(
        self,
        schema: CollectionSchema,
        embedding_service: EmbeddingService,
        settings: VectorStoreSettings,
    ) -> None:
        self._schema = schema
        self._embedding_service = embedding_service
        self._settings = settings

    async def to_record(self, document: Document) -> dict[str, Any]:
        """Convert one document, embedding its content if needed.

        Raises:
            EmbeddingError: If embedding fails or has the wrong dimension.
            DocumentMappingError: If metadata cannot be mapped.
        """
        records = await self.to_records([document])
        return records[0]

    async def to_records(self, documents: list[Document]) -> list[dict[str, Any]]:
        """Convert documents in order, embedding all missing vectors at once.

        Raises:
            EmbeddingError: If embedding fails or has the wrong dimension.
            DocumentMappingError: For the first document whose metadata
                cannot be mapped.
        """
        embeddings = await self.embed_missing(documents)
        records = []
        for doc, embedding in zip(documents, embeddings):
            self.check_dimension(doc.id, embedding)
            records.append(self.build_record(doc, embedding))
        return records

    async def embed_missing(self, documents: list[Document]) -> list[list[float]]:
        """Return an embedding per document, computing only the absent ones.

        Vector lengths are not checked here; see ``check_dimension``.

        Raises:
            EmbeddingError: If the embedding service fails.
        """
        missing = [i for i, doc in enumerate(documents) if not doc.has_embedding]
        vectors: list[list[float]] = [doc.embedding or [] for doc in documents]

        if missing:
            results = await self._embedding_service.embed_batch(
                [documents[i].content for i in missing]
            )
            for index, result in zip(missing, results):
                vectors[index] = result.embedding

        return vectors

    def build_record(self, document: Document, embedding: list[float]) -> dict[str, Any]:
        """Assemble the backend record for an already-embedded document.

        Raises:
            DocumentMappingError: If metadata cannot be mapped.
        """
        doc_id = document.id.strip() or generate_id()
        record: dict[str, Any] = {
            ID_FIELD: doc_id,
            CONTENT_FIELD: document.content,
        }

        for key, value in document.metadata.items():
            if key in RESERVED_FIELDS:
                raise DocumentMappingError(
                    f"Metadata key {key!r} is reserved",
                    doc_id,
                    {"field": key},
                )
            spec = self._schema.get_field(key)
            if spec is None or (spec.is_dynamic and not self._settings.allow_dynamic_fields):
                if self._settings.unknown_metadata_policy == UnknownMetadataPolicy.REJECT:
                    raise DocumentMappingError(
                        f"Metadata key {key!r} is not declared in the schema",
                        doc_id,
                        {"field": key},
                    )
                logger.debug(
                    f"Dropping undeclared metadata key {key!r}",
                    extra={"document_id": doc_id},
                )
                continue
            record[key] = self._coerce(doc_id, key, value, spec)

        record[EMBEDDING_FIELD] = list(embedding)
        return record

    def from_hit(self, hit: dict[str, Any]) -> ScoredDocument:
        """Rebuild a scored document from a backend search hit."""
        stored = hit.get("document", {})
        metadata = {
            key: value
            for key, value in stored.items()
            if key not in RESERVED_FIELDS
        }
        document = Document(
            id=str(stored.get(ID_FIELD, "")),
            content=str(stored.get(CONTENT_FIELD, "")),
            metadata=metadata,
        )
        return ScoredDocument(document=document, score=hit_score(hit))

    def check_dimension(self, doc_id: str, vector: list[float]) -> None:
        """Raise ``EmbeddingError`` unless ``vector`` fits the embedding field."""
        expected = self._schema.embedding_dimension
        if len(vector) != expected:
            raise EmbeddingError(
                f"Embedding for document {doc_id} has {len(vector)} dimensions, "
                f"expected {expected}",
                code=ErrorCode.EMBEDDING_DIMENSION_MISMATCH,
                details={
                    "document_id": doc_id,
                    "expected": expected,
                    "actual": len(vector),
                },
            )

    def _coerce(
        self,
        doc_id: str,
        key: str,
        value: MetadataValue,
        spec: FieldSpec,
    ) -> MetadataValue:
        try:
            return coerce_value(value, spec.type)
        except (TypeError, ValueError) as e:
            raise DocumentMappingError(
                f"Metadata key {key!r} cannot be stored as {spec.type.value}: {e}",
                doc_id,
                {"field": key, "type": spec.type.value},
            ) from e


def coerce_value(value: MetadataValue, field_type: FieldType) -> MetadataValue:
    """Convert a metadata value to the representation of ``field_type``.

    Raises:
        ValueError: If the value has no sensible conversion.
    """
    if field_type in _STORED_AS_GIVEN:
        return value
    if field_type == FieldType.STRING_AUTO:
        if isinstance(value, list):
            return [_to_string(item) for item in value]
        return _to_string(value)
    element = field_type.element_type
    if element is not None:
        items = value if isinstance(value, list) else [value]
        return [coerce_value(item, element) for item in items]
    if isinstance(value, list):
        raise ValueError("list given for a scalar field")
    if field_type == FieldType.STRING:
        return _to_string(value)
    if field_type in (FieldType.INT32, FieldType.INT64):
        if isinstance(value, bool):
            raise ValueError("boolean given for an integer field")
        if isinstance(value, float):
            if not value.is_integer():
                raise ValueError(f"{value} is not integral")
            return int(value)
        return int(value)
    if field_type == FieldType.FLOAT:
        if isinstance(value, bool):
            raise ValueError("boolean given for a float field")
        return float(value)
    if field_type == FieldType.BOOL:
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ValueError(f"{value!r} is not a boolean")
    raise ValueError(f"unsupported field type {field_type.value}")


def _to_string(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def hit_score(hit: dict[str, Any]) -> float:
    """Similarity of a hit, clamped to [0, 1].

    Vector hits carry a cosine ``vector_distance`` in [0, 2]; the score is
    ``1 - distance``. Keyword-only hits fall back to ``text_match_info``'s
    normalized score when present.
    """
    distance = hit.get("vector_distance")
    if distance is not None:
        score = 1.0 - float(distance)
    else:
        info = hit.get("text_match_info") or {}
        score = float(info.get("score", 0.0))
    return min(1.0, max(0.0, score))
