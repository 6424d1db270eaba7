"""Collection schema data models.

Mirrors the Typesense collection definition: a name, an ordered list of
fields and the dimension of the embedding field.
"""

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

ID_FIELD = "id"
CONTENT_FIELD = "content"
EMBEDDING_FIELD = "embedding"
DYNAMIC_FIELD_PATTERN = ".*"

RESERVED_FIELDS = frozenset({ID_FIELD, CONTENT_FIELD, EMBEDDING_FIELD})


class FieldType(str, Enum):
    """Field types understood by the backend.

    ``float[]`` is both the embedding type and a plain float array; the
    embedding field is the one carrying ``num_dim``.
    """

    STRING = "string"
    INT32 = "int32"
    INT64 = "int64"
    FLOAT = "float"
    BOOL = "bool"
    STRING_ARRAY = "string[]"
    INT32_ARRAY = "int32[]"
    INT64_ARRAY = "int64[]"
    FLOAT_VECTOR = "float[]"
    BOOL_ARRAY = "bool[]"
    STRING_AUTO = "string*"
    GEOPOINT = "geopoint"
    GEOPOINT_ARRAY = "geopoint[]"
    OBJECT = "object"
    OBJECT_ARRAY = "object[]"
    IMAGE = "image"
    AUTO = "auto"

    @property
    def element_type(self) -> "FieldType | None":
        """Scalar type of an array type, ``None`` for everything else."""
        return _ARRAY_ELEMENTS.get(self)


_ARRAY_ELEMENTS = {
    FieldType.STRING_ARRAY: FieldType.STRING,
    FieldType.INT32_ARRAY: FieldType.INT32,
    FieldType.INT64_ARRAY: FieldType.INT64,
    FieldType.FLOAT_VECTOR: FieldType.FLOAT,
    FieldType.BOOL_ARRAY: FieldType.BOOL,
}


class FieldSpec(BaseModel):
    """A single field declaration in a collection schema.

    Attributes:
        name: Field name, or a regular expression for dynamic fields.
        type: Backend field type.
        facet: Whether the field is faceted.
        optional: Whether documents may omit the field.
        num_dim: Vector dimension, only for ``float[]`` embedding fields.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, description="Field name or pattern")
    type: FieldType = Field(description="Field type")
    facet: bool = Field(default=False, description="Faceted field")
    optional: bool = Field(default=True, description="Field may be absent")
    num_dim: int | None = Field(default=None, gt=0, description="Vector dimension")

    @property
    def is_dynamic(self) -> bool:
        """Whether the name is a pattern matching many metadata keys."""
        return self.type == FieldType.AUTO or any(c in self.name for c in "*?[]^$")

    def matches(self, name: str) -> bool:
        """Check whether a concrete field name is covered by this declaration."""
        if self.is_dynamic:
            return re.fullmatch(self.name, name) is not None
        return self.name == name

    def to_payload(self) -> dict[str, Any]:
        """Serialize into the backend's field definition."""
        payload: dict[str, Any] = {
            "name": self.name,
            "type": self.type.value,
            "facet": self.facet,
            "optional": self.optional,
        }
        if self.num_dim is not None:
            payload["num_dim"] = self.num_dim
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "FieldSpec":
        """Build a field declaration from the backend's field definition."""
        return cls(
            name=payload["name"],
            type=FieldType(payload["type"]),
            facet=bool(payload.get("facet", False)),
            optional=bool(payload.get("optional", False)),
            num_dim=payload.get("num_dim"),
        )


class CollectionSchema(BaseModel):
    """Schema of one backend collection.

    Attributes:
        name: Collection name.
        fields: Ordered field declarations.
        embedding_dimension: Length of the ``embedding`` vector field.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Collection name")
    fields: tuple[FieldSpec, ...] = Field(description="Ordered field declarations")
    embedding_dimension: int = Field(gt=0, description="Embedding vector length")

    def get_field(self, name: str) -> FieldSpec | None:
        """Return the declaration covering ``name``.

        Concrete declarations win over dynamic patterns.
        """
        for spec in self.fields:
            if not spec.is_dynamic and spec.name == name:
                return spec
        for spec in self.fields:
            if spec.is_dynamic and spec.matches(name):
                return spec
        return None

    @property
    def metadata_fields(self) -> tuple[FieldSpec, ...]:
        """Declared fields other than id, content and embedding."""
        return tuple(f for f in self.fields if f.name not in RESERVED_FIELDS)

    @property
    def allows_dynamic_fields(self) -> bool:
        """Whether any declaration is a catch-all pattern."""
        return any(f.is_dynamic for f in self.fields)

    def is_filterable(self, name: str) -> bool:
        """Whether ``name`` can appear in a filter expression."""
        if name == EMBEDDING_FIELD:
            return False
        return self.get_field(name) is not None

    def to_payload(self) -> dict[str, Any]:
        """Serialize into a create-collection request body."""
        return {
            "name": self.name,
            "fields": [f.to_payload() for f in self.fields],
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "CollectionSchema":
        """Build a schema from a get-collection response body.

        Raises:
            ValueError: If the collection has no ``embedding`` vector field.
        """
        fields = tuple(FieldSpec.from_payload(f) for f in payload.get("fields", []))
        dimension = next(
            (f.num_dim for f in fields if f.name == EMBEDDING_FIELD and f.num_dim),
            None,
        )
        if dimension is None:
            raise ValueError(
                f"collection {payload.get('name')!r} has no '{EMBEDDING_FIELD}' vector field"
            )
        return cls(name=payload["name"], fields=fields, embedding_dimension=dimension)


def build_schema(
    name: str,
    embedding_dimension: int,
    metadata_fields: list[FieldSpec] | tuple[FieldSpec, ...] = (),
    allow_dynamic_fields: bool = True,
) -> CollectionSchema:
    """Construct the schema for a new collection.

    Args:
        name: Collection name.
        embedding_dimension: Embedding vector length.
        metadata_fields: Explicit metadata declarations.
        allow_dynamic_fields: Append a catch-all auto-typed field.

    Returns:
        Schema with id, content, metadata and embedding fields in that order.
    """
    fields: list[FieldSpec] = [
        FieldSpec(name=ID_FIELD, type=FieldType.STRING, optional=False),
        FieldSpec(name=CONTENT_FIELD, type=FieldType.STRING, optional=False),
        *metadata_fields,
    ]
    if allow_dynamic_fields:
        fields.append(FieldSpec(name=DYNAMIC_FIELD_PATTERN, type=FieldType.AUTO))
    fields.append(
        FieldSpec(
            name=EMBEDDING_FIELD,
            type=FieldType.FLOAT_VECTOR,
            optional=False,
            num_dim=embedding_dimension,
        )
    )
    return CollectionSchema(
        name=name,
        fields=tuple(fields),
        embedding_dimension=embedding_dimension,
    )
