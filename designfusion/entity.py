"""Entity and field models for the inferred data model.

A `DetectedEntity` is one candidate table, built from a single analyzer's
output by the normalizer and possibly merged with the other analyzer's view of
the same table by the fusion engine. A `DetectedField` is one column candidate.

Both models are frozen. To change one, use ``model_copy(update={...})``.
"""

from enum import Enum

from pydantic import BaseModel, Field


class FieldType(str, Enum):
    """Closed set of column types the downstream generators understand."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    GEOMETRY = "geometry"
    POINT = "point"
    JSON = "json"
    ARRAY = "array"


class SourceMethod(str, Enum):
    """Which analyzer produced a piece of evidence."""

    TEXT = "text"
    """The text-pattern analyzer, or the rule-based pass over the same design text."""

    VISION = "vision"
    """The vision analyzer working from rendered screenshots."""


class SemanticType(str, Enum):
    """Coarse classification that drives relationship inference."""

    USER = "user"
    FORM = "form"
    NAVIGATION = "navigation"
    MEDIA = "media"
    SPATIAL = "spatial"
    CONTENT = "content"
    METADATA = "metadata"


class DetectedField(BaseModel, frozen=True):
    """A column candidate on a detected entity."""

    name: str = Field(description="Normalized snake_case column name.")
    type: FieldType = Field(default=FieldType.STRING, description="Column type.")
    required: bool = Field(default=False)
    unique: bool = Field(default=False)
    is_primary: bool = Field(default=False, description="Whether this field is the primary key.")
    source_methods: frozenset[SourceMethod] = Field(
        default=frozenset(),
        description="Analyzers that reported this field; both after a cross-source merge.",
    )
    confidence: float | None = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Independent field score. None means it inherits the entity confidence.",
    )
    description: str = Field(default="", description="Human-readable description of the column.")

    @property
    def key(self) -> str:
        """Case-insensitive identity of the field within its entity."""
        return self.name.lower()


class DetectedEntity(BaseModel, frozen=True):
    """A table candidate inferred from design content.

    Two entities are considered the same table iff their `key` values are
    equal, i.e. their canonical names match case-insensitively. That relation
    drives deduplication inside a single source and across sources.
    """

    name: str = Field(description="Canonical PascalCase entity name.")
    table_name: str = Field(description="snake_case plural table name.")
    fields: tuple[DetectedField, ...] = Field(
        min_length=1,
        description="Ordered columns; always contains exactly one primary key.",
    )
    semantic_type: SemanticType = Field(default=SemanticType.METADATA)
    source_element_ids: tuple[str, ...] = Field(
        default=(),
        description="Originating design node identifiers, for traceability only.",
    )
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    reasoning: str = Field(default="", description="Why this entity was inferred.")
    source_methods: frozenset[SourceMethod] = Field(default=frozenset())
    description: str = Field(default="")

    @property
    def key(self) -> str:
        """Case-insensitive identity used for deduplication."""
        return self.name.lower()

    @property
    def primary_key(self) -> DetectedField:
        """Return the entity's primary key field."""
        for field in self.fields:
            if field.is_primary:
                return field
        raise ValueError(f"Entity {self.name} has no primary key field")

    def get_field(self, name: str) -> DetectedField | None:
        """Look up a field by name, case-insensitively."""
        wanted = name.lower()
        for field in self.fields:
            if field.key == wanted:
                return field
        return None
