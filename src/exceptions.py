"""Vector store exception hierarchy.

All custom exceptions inherit from StoreError.
Each exception has an error code for structured error handling.
"""

from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes for structured error handling."""

    # General errors (1xxx)
    INTERNAL_ERROR = "VS-1000"
    CONFIGURATION_ERROR = "VS-1001"
    VALIDATION_ERROR = "VS-1002"
    STORE_NOT_CONFIGURED = "VS-1003"

    # Filter errors (2xxx)
    FILTER_SYNTAX_ERROR = "VS-2000"
    FILTER_UNKNOWN_FIELD = "VS-2001"
    FILTER_INVALID_VALUE = "VS-2002"

    # Embedding errors (3xxx)
    EMBEDDING_SERVICE_ERROR = "VS-3000"
    EMBEDDING_DIMENSION_MISMATCH = "VS-3001"

    # Schema errors (4xxx)
    SCHEMA_MISSING = "VS-4000"
    SCHEMA_CONFLICT = "VS-4001"
    COLLECTION_EXISTS = "VS-4002"

    # Document and ingestion errors (5xxx)
    DOCUMENT_MAPPING_ERROR = "VS-5000"
    PARTIAL_INGESTION = "VS-5001"

    # Backend transport errors (6xxx)
    TRANSPORT_ERROR = "VS-6000"
    BACKEND_REJECTED = "VS-6001"


class StoreError(Exception):
    """Base exception for all vector store errors.

    Attributes:
        message: Human-readable error message.
        code: Structured error code.
        details: Additional error context.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
            }
        }


class ConfigurationError(StoreError):
    """Configuration or environment error."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)


class ValidationError(StoreError):
    """Input validation error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class FilterSyntaxError(ValidationError):
    """Malformed portable filter expression."""

    def __init__(
        self,
        message: str,
        position: int | None = None,
        text: str | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if position is not None:
            details["position"] = position
        if text is not None:
            details["filter"] = text
        super().__init__(message, ErrorCode.FILTER_SYNTAX_ERROR, details)
        self.position = position


class UnknownFieldError(ValidationError):
    """Filter references a field the collection schema does not declare."""

    def __init__(self, field: str, collection: str | None = None) -> None:
        details: dict[str, Any] = {"field": field}
        if collection is not None:
            details["collection"] = collection
        super().__init__(
            f"Unknown filter field: {field}",
            ErrorCode.FILTER_UNKNOWN_FIELD,
            details,
        )
        self.field = field


class FilterValueError(ValidationError):
    """Filter value cannot be safely embedded in the backend filter string."""

    def __init__(self, message: str, field: str, value: Any) -> None:
        super().__init__(
            message,
            ErrorCode.FILTER_INVALID_VALUE,
            {"field": field, "value": value},
        )
        self.field = field


class SchemaError(StoreError):
    """Collection schema lifecycle error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.SCHEMA_CONFLICT,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class SchemaMissingError(SchemaError):
    """Collection does not exist and schema initialization is disabled."""

    def __init__(self, collection: str) -> None:
        super().__init__(
            f"Collection not found: {collection}",
            ErrorCode.SCHEMA_MISSING,
            {"collection": collection},
        )


class SchemaConflictError(SchemaError):
    """Existing collection schema is incompatible with the configuration."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.SCHEMA_CONFLICT, details)


class EmbeddingError(StoreError):
    """Embedding service error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.EMBEDDING_SERVICE_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class DocumentMappingError(StoreError):
    """Document cannot be converted into a backend record."""

    def __init__(
        self,
        message: str,
        document_id: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.DOCUMENT_MAPPING_ERROR,
            {"document_id": document_id, **(details or {})},
        )
        self.document_id = document_id


class PartialIngestionError(StoreError):
    """Some documents of an ingestion call were not stored.

    Failures are kept as an ordered list; two documents sharing an id are
    reported separately.

    Attributes:
        failures: One ``{"document_id", "error", "batch_index"}`` entry per
            failed document, in input order.
        succeeded: Ids of documents that were stored.
    """

    def __init__(
        self,
        failures: Sequence[Mapping[str, Any]],
        succeeded: list[str],
        total: int,
    ) -> None:
        entries = [dict(failure) for failure in failures]
        super().__init__(
            f"{len(entries)} of {total} documents failed to ingest",
            ErrorCode.PARTIAL_INGESTION,
            {
                "failures": entries,
                "succeeded": list(succeeded),
                "total": total,
            },
        )
        self.failures = entries
        self.succeeded = list(succeeded)
        self.total = total

    @property
    def failed_ids(self) -> list[str]:
        """Ids of documents that were not stored, in input order."""
        return [failure["document_id"] for failure in self.failures]


class TransportError(StoreError):
    """Backend unreachable or returned a non-2xx response."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: ErrorCode = ErrorCode.TRANSPORT_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            code,
            {"status_code": status_code, **(details or {})},
        )
        self.status_code = status_code
