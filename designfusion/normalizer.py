"""Entity normalization: turn one raw analyzer record into a `DetectedEntity`.

The normalizer canonicalizes names, derives table names, classifies the entity
into a `SemanticType`, guarantees a single primary key and standard timestamp
columns, and maps free-form column types onto the closed `FieldType` set.

Classification uses `SEMANTIC_RULES`, an ordered table of keyword groups. The
first group whose keyword occurs in the lowercased entity name wins, so the
order of the table is part of the contract: it decides which relationships the
inferrer proposes later.
"""

import logging
import re
from typing import Any

from pydantic import ValidationError

from designfusion.confidence import clamp01
from designfusion.entity import (
    DetectedEntity,
    DetectedField,
    FieldType,
    SemanticType,
    SourceMethod,
)
from designfusion.raw import RawEntityRecord, RawFieldRecord

logger = logging.getLogger(__name__)

DEFAULT_ENTITY_CONFIDENCE = 0.5
"""Confidence assumed when an analyzer omits one."""

SEMANTIC_RULES: tuple[tuple[tuple[str, ...], SemanticType], ...] = (
    (("user", "profile", "account", "member", "author", "customer"), SemanticType.USER),
    (("form", "submission", "input", "field", "signup", "login", "register"), SemanticType.FORM),
    (("nav", "menu", "link", "breadcrumb", "tab"), SemanticType.NAVIGATION),
    (("media", "image", "video", "audio", "gallery", "avatar", "photo"), SemanticType.MEDIA),
    (("spatial", "container", "universe", "location", "map", "place"), SemanticType.SPATIAL),
    (("content", "text", "article", "post", "comment", "item", "card", "product"), SemanticType.CONTENT),
)

# Ordered most specific first; the first pattern that matches wins.
_FIELD_TYPE_PATTERNS: tuple[tuple[re.Pattern[str], FieldType], ...] = (
    (re.compile(r"point|coordinate|latlng|lat_lng"), FieldType.POINT),
    (re.compile(r"geometry|geography|polygon|linestring"), FieldType.GEOMETRY),
    (re.compile(r"\[\]|array|list"), FieldType.ARRAY),
    (re.compile(r"json|object|map|dict"), FieldType.JSON),
    (re.compile(r"bool"), FieldType.BOOLEAN),
    (re.compile(r"date|time"), FieldType.DATE),
    (re.compile(r"int|float|double|decimal|numeric|number|real|serial|money"), FieldType.NUMBER),
    (re.compile(r"uuid|char|text|string|str|email|url|enum"), FieldType.STRING),
)

_WORD_RE = re.compile(r"[A-Z]+(?![a-z])|[A-Z]?[a-z]+|[0-9]+")


class InvalidEntityName(ValueError):
    """Raised when an entity name has no alphanumeric content."""


def _split_words(text: str) -> list[str]:
    return _WORD_RE.findall(text or "")


def canonical_entity_name(name: str) -> str:
    """Canonicalize a name to PascalCase over alphanumeric word boundaries.

    ``"user profile"``, ``"user_profile"`` and ``"userProfile"`` all become
    ``"UserProfile"``. Acronyms keep their case (``"API key"`` -> ``"APIKey"``).

    Raises:
        InvalidEntityName: If nothing alphanumeric remains.
    """
    words = _split_words(name)
    if not words:
        raise InvalidEntityName(f"Entity name {name!r} has no alphanumeric content")
    return "".join(w[0].upper() + w[1:] for w in words)


def snake_case(name: str) -> str:
    """Convert a name to snake_case (``"UserProfile"`` -> ``"user_profile"``)."""
    return "_".join(w.lower() for w in _split_words(name))


def pluralize(word: str) -> str:
    """Naive English plural of a single lowercase word."""
    if not word:
        return word
    if word.endswith("y") and len(word) > 1 and word[-2] not in "aeiou":
        return word[:-1] + "ies"
    if word.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    return word + "s"


def table_name_for(name: str) -> str:
    """Derive the snake_case plural table name for an entity name."""
    parts = snake_case(name).split("_")
    parts[-1] = pluralize(parts[-1])
    return "_".join(parts)


def classify_semantic_type(name: str) -> SemanticType:
    """Classify an entity name using `SEMANTIC_RULES`; first match wins."""
    lowered = name.lower()
    for keywords, semantic_type in SEMANTIC_RULES:
        if any(keyword in lowered for keyword in keywords):
            return semantic_type
    return SemanticType.METADATA


def normalize_field_type(raw_type: str) -> FieldType:
    """Map a free-form column type (``"uuid"``, ``"timestamptz"``...) to a `FieldType`."""
    lowered = raw_type.strip().lower()
    try:
        return FieldType(lowered)
    except ValueError:
        pass
    for pattern, field_type in _FIELD_TYPE_PATTERNS:
        if pattern.search(lowered):
            return field_type
    logger.debug("Unknown field type %r, defaulting to string", raw_type)
    return FieldType.STRING


def primary_key_field(method: SourceMethod) -> DetectedField:
    return DetectedField(
        name="id",
        type=FieldType.STRING,
        required=True,
        unique=True,
        is_primary=True,
        source_methods=frozenset({method}),
        description="Primary identifier",
    )


def timestamp_fields(method: SourceMethod) -> tuple[DetectedField, DetectedField]:
    methods = frozenset({method})
    return (
        DetectedField(
            name="created_at",
            type=FieldType.DATE,
            required=True,
            source_methods=methods,
            description="Record creation timestamp",
        ),
        DetectedField(
            name="updated_at",
            type=FieldType.DATE,
            required=True,
            source_methods=methods,
            description="Record last update timestamp",
        ),
    )


def normalize_field(raw: Any, method: SourceMethod) -> DetectedField | None:
    """Validate and normalize one raw column; None if it must be dropped."""
    try:
        record = RawFieldRecord.model_validate(raw)
    except ValidationError:
        logger.warning("Dropping malformed field record: %r", raw)
        return None
    name = snake_case(record.name)
    if not name:
        logger.warning("Dropping field with empty name: %r", raw)
        return None
    return DetectedField(
        name=name,
        type=normalize_field_type(record.type),
        required=record.required,
        unique=record.unique,
        is_primary=record.is_primary,
        source_methods=frozenset({method}),
        confidence=None if record.confidence is None else clamp01(record.confidence),
        description=record.description or f"Field: {name}",
    )


def _union_same_source(a: DetectedField, b: DetectedField) -> DetectedField:
    return a.model_copy(
        update={
            "required": a.required or b.required,
            "unique": a.unique or b.unique,
            "is_primary": a.is_primary or b.is_primary,
            "source_methods": a.source_methods | b.source_methods,
        }
    )


def ensure_primary_key(fields: list[DetectedField], method: SourceMethod) -> list[DetectedField]:
    """Return `fields` with exactly one primary key field.

    If several fields are flagged primary, only the first keeps the flag. If
    none is, an existing ``id`` column is promoted, or a synthetic ``id``
    column is prepended.
    """
    primary_seen = False
    result: list[DetectedField] = []
    for field in fields:
        if field.is_primary:
            if primary_seen:
                field = field.model_copy(update={"is_primary": False})
            primary_seen = True
        result.append(field)
    if primary_seen:
        return result

    for i, field in enumerate(result):
        if field.key == "id":
            result[i] = field.model_copy(update={"is_primary": True, "required": True, "unique": True})
            return result
    return [primary_key_field(method), *result]


def normalize_entity(
    raw: RawEntityRecord,
    method: SourceMethod,
    *,
    add_timestamp_fields: bool = True,
) -> DetectedEntity:
    """Normalize one validated raw entity record from a single source.

    Args:
        raw: The validated boundary record.
        method: Which analyzer produced the record.
        add_timestamp_fields: Append ``created_at``/``updated_at`` when missing.

    Returns:
        A `DetectedEntity` with ``source_methods == {method}``.

    Raises:
        InvalidEntityName: If the record's name has no alphanumeric content.
    """
    name = canonical_entity_name(raw.name)
    table_name = snake_case(raw.table_name) if raw.table_name and snake_case(raw.table_name) else table_name_for(name)

    semantic_type = classify_semantic_type(name)
    if raw.semantic_type:
        try:
            semantic_type = SemanticType(raw.semantic_type.strip().lower())
        except ValueError:
            logger.debug("Ignoring unknown semantic type %r on %s", raw.semantic_type, name)

    fields: list[DetectedField] = []
    index: dict[str, int] = {}
    for raw_field in raw.fields:
        field = normalize_field(raw_field, method)
        if field is None:
            continue
        if field.key in index:
            fields[index[field.key]] = _union_same_source(fields[index[field.key]], field)
            continue
        index[field.key] = len(fields)
        fields.append(field)

    fields = ensure_primary_key(fields, method)
    if add_timestamp_fields:
        present = {f.key for f in fields}
        fields.extend(f for f in timestamp_fields(method) if f.key not in present)

    confidence = DEFAULT_ENTITY_CONFIDENCE if raw.confidence is None else clamp01(raw.confidence)

    return DetectedEntity(
        name=name,
        table_name=table_name,
        fields=tuple(fields),
        semantic_type=semantic_type,
        source_element_ids=tuple(dict.fromkeys(raw.source_elements)),
        confidence=confidence,
        reasoning=raw.reasoning or f"Detected by {method.value} analysis",
        source_methods=frozenset({method}),
        description=raw.description or "",
    )
