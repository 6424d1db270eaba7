"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables.
No secrets are hardcoded.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.schema import FieldSpec


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class UnknownMetadataPolicy(str, Enum):
    """What to do with metadata keys the collection schema does not declare."""

    DROP = "drop"
    REJECT = "reject"


class EmbeddingSettings(BaseSettings):
    """Embedding service configuration."""

    model_config = SettingsConfigDict(env_prefix="EMBEDDING_")

    base_url: str = Field(
        default="http://localhost:8080",
        description="Embedding service base URL",
    )
    model: str = Field(
        default="text-embedding-3-small",
        description="Embedding model name",
    )
    batch_size: int = Field(
        default=32,
        gt=0,
        description="Batch size for embedding requests",
    )
    timeout: float = Field(
        default=60.0,
        description="Request timeout in seconds",
    )


class TypesenseSettings(BaseSettings):
    """Typesense server connection configuration."""

    model_config = SettingsConfigDict(env_prefix="TYPESENSE_")

    url: str = Field(
        default="http://localhost:8108",
        description="Typesense server URL",
    )
    api_key: SecretStr = Field(
        default=SecretStr("xyz"),
        description="Typesense API key",
    )
    timeout: float = Field(
        default=30.0,
        description="Request timeout in seconds",
    )


class VectorStoreSettings(BaseSettings):
    """Vector store behaviour.

    Immutable once constructed; invalid dimensions or batch sizes fail here
    rather than on the first write.
    """

    model_config = SettingsConfigDict(env_prefix="VECTOR_STORE_", frozen=True)

    initialize_schema: bool = Field(
        default=False,
        description="Create the collection when it does not exist",
    )
    collection_name: str = Field(
        default="vector_store",
        min_length=1,
        description="Backend collection name",
    )
    embedding_dimension: int = Field(
        default=1536,
        gt=0,
        description="Length of every stored embedding",
    )
    batch_size: int = Field(
        default=100,
        gt=0,
        description="Documents per import request",
    )
    allow_dynamic_fields: bool = Field(
        default=True,
        description="Accept undeclared metadata keys as auto-typed fields",
    )
    unknown_metadata_policy: UnknownMetadataPolicy = Field(
        default=UnknownMetadataPolicy.DROP,
        description="Handling of undeclared metadata keys when dynamic fields are off",
    )
    metadata_fields: list[FieldSpec] = Field(
        default_factory=list,
        description="Explicitly declared metadata fields",
    )
    native_similarity_threshold: bool = Field(
        default=False,
        description="Push the similarity threshold to the backend as distance_threshold",
    )
    default_top_k: int = Field(
        default=4,
        gt=0,
        description="topK used when a request does not set one",
    )

    @field_validator("metadata_fields")
    @classmethod
    def _no_reserved_fields(cls, value: list[FieldSpec]) -> list[FieldSpec]:
        reserved = {"id", "content", "embedding"}
        names = [spec.name for spec in value]
        clashes = reserved.intersection(names)
        if clashes:
            raise ValueError(f"metadata fields use reserved names: {sorted(clashes)}")
        if len(names) != len(set(names)):
            raise ValueError("metadata field names must be unique")
        return value


class Settings(BaseSettings):
    """Main application settings.

    Aggregates all configuration sections.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application settings
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    # API settings
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host",
    )
    api_port: int = Field(
        default=8000,
        description="API server port",
    )

    # Nested settings
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    typesense: TypesenseSettings = Field(default_factory=TypesenseSettings)
    vector_store: VectorStoreSettings = Field(default_factory=VectorStoreSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()
