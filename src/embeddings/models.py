"""Embedding data models."""

import math

from pydantic import BaseModel, Field, field_validator, model_validator


class EmbeddingResult(BaseModel):
    """One vector returned by the embedding service.

    ``dimensions`` must equal the vector length; the store compares it
    against the collection's declared embedding dimension before writing.
    """

    text: str = Field(description="Text the vector was computed for")
    embedding: list[float] = Field(min_length=1, description="Embedding vector")
    model: str = Field(description="Model that produced the vector")
    dimensions: int = Field(gt=0, description="Vector length")

    @field_validator("embedding")
    @classmethod
    def _finite(cls, value: list[float]) -> list[float]:
        if not all(math.isfinite(component) for component in value):
            raise ValueError("embedding contains NaN or infinite components")
        return value

    @model_validator(mode="after")
    def _check_dimensions(self) -> "EmbeddingResult":
        if self.dimensions != len(self.embedding):
            raise ValueError(
                f"dimensions ({self.dimensions}) does not match "
                f"embedding length ({len(self.embedding)})"
            )
        return self
