"""Boundary records for raw analyzer payloads.

Analyzers return loosely structured JSON produced by a language model. These
models are the only place that shape is accepted: every record is validated
here and then normalized into the internal models, so unvalidated dicts never
reach the fusion engine.

Both camelCase (as the models are prompted to answer) and snake_case keys are
accepted. Unknown keys are ignored.
"""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class _RawRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class RawFieldRecord(_RawRecord):
    """A column as reported by an analyzer. Name and type are mandatory."""

    name: str
    type: str
    required: bool = False
    unique: bool = False
    is_primary: bool = Field(
        default=False,
        validation_alias=AliasChoices("is_primary", "isPrimary", "primary"),
    )
    description: str | None = None
    confidence: Any = None

    @field_validator("required", "unique", "is_primary", mode="before")
    @classmethod
    def none_is_false(cls, value: Any) -> Any:
        return False if value is None else value


class RawEntityRecord(_RawRecord):
    """A table candidate as reported by an analyzer.

    `fields` is kept as a list of arbitrary items so that one malformed column
    does not invalidate the whole entity; columns are validated one by one in
    the normalizer.
    """

    name: str
    table_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("table_name", "tableName"),
    )
    description: str | None = None
    fields: list[Any] = Field(default_factory=list)
    source_elements: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("source_elements", "sourceElements", "sourceElementIds"),
    )
    semantic_type: str | None = Field(
        default=None,
        validation_alias=AliasChoices("semantic_type", "semanticType"),
    )
    confidence: Any = None
    reasoning: str | None = None

    @field_validator("fields", "source_elements", mode="before")
    @classmethod
    def none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class RawRelationshipRecord(_RawRecord):
    """A relationship as reported by an analyzer."""

    from_entity: str = Field(validation_alias=AliasChoices("from_entity", "from", "source"))
    to_entity: str = Field(validation_alias=AliasChoices("to_entity", "to", "target"))
    type: str
    confidence: Any = None
    reasoning: str | None = None
    foreign_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("foreign_key", "foreignKey"),
    )


class RawEndpointRecord(_RawRecord):
    """An API endpoint as reported by the text analyzer."""

    method: str
    path: str
    handler: str | None = None
    description: str | None = None
    requires_auth: bool = Field(
        default=False,
        validation_alias=AliasChoices("requires_auth", "requiresAuth"),
    )

    @field_validator("requires_auth", mode="before")
    @classmethod
    def none_is_false(cls, value: Any) -> Any:
        return False if value is None else value
