"""Merging of entities, fields and relationships that describe the same thing.

These functions are shared by the builder (collapsing duplicates reported by
one analyzer) and the fusion engine (combining the two analyzers). A merge is
*cross-source* when the incoming item carries a source method the existing one
does not; only cross-source merges count as independent agreement and earn
the agreement boost and the traceability markers.
"""

from enum import Enum

from designfusion.confidence import boost
from designfusion.entity import DetectedEntity, DetectedField, FieldType, SourceMethod
from designfusion.relationship import SuggestedRelationship

CONFIRMED_BY_VISION_MARKER = "(confirmed by visual analysis)"
COMBINED_REASONING_PREFIX = "Combined analysis: "


class FieldTypePolicy(str, Enum):
    """How to resolve a column reported with different types by two sources."""

    PREFER_SPECIFIC = "prefer_specific"
    """Keep the more specific type; `string` is the least specific."""

    PREFER_TEXT = "prefer_text"
    """Keep the type reported by the text analyzer."""

    PREFER_VISION = "prefer_vision"
    """Keep the type reported by the vision analyzer."""


TYPE_SPECIFICITY: dict[FieldType, int] = {
    FieldType.STRING: 0,
    FieldType.JSON: 1,
    FieldType.ARRAY: 2,
    FieldType.NUMBER: 3,
    FieldType.BOOLEAN: 3,
    FieldType.DATE: 4,
    FieldType.GEOMETRY: 5,
    FieldType.POINT: 6,
}


def resolve_field_type(
    existing: DetectedField,
    incoming: DetectedField,
    policy: FieldTypePolicy = FieldTypePolicy.PREFER_SPECIFIC,
) -> FieldType:
    """Pick the type of a merged field according to `policy`.

    Equal specificity keeps the existing field's type, as does a source
    preference that neither field satisfies.
    """
    if existing.type == incoming.type:
        return existing.type
    if policy == FieldTypePolicy.PREFER_SPECIFIC:
        if TYPE_SPECIFICITY[incoming.type] > TYPE_SPECIFICITY[existing.type]:
            return incoming.type
        return existing.type

    preferred = SourceMethod.TEXT if policy == FieldTypePolicy.PREFER_TEXT else SourceMethod.VISION
    if preferred in existing.source_methods:
        return existing.type
    if preferred in incoming.source_methods:
        return incoming.type
    return existing.type


def _max_optional(a: float | None, b: float | None) -> float | None:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def merge_field(
    existing: DetectedField,
    incoming: DetectedField,
    policy: FieldTypePolicy = FieldTypePolicy.PREFER_SPECIFIC,
) -> DetectedField:
    """Union the metadata of two reports of the same column."""
    description = existing.description
    cross_source = bool(incoming.source_methods - existing.source_methods)
    if cross_source and CONFIRMED_BY_VISION_MARKER not in description:
        description = f"{description} {CONFIRMED_BY_VISION_MARKER}".strip()
    return existing.model_copy(
        update={
            "type": resolve_field_type(existing, incoming, policy),
            "required": existing.required or incoming.required,
            "unique": existing.unique or incoming.unique,
            "is_primary": existing.is_primary or incoming.is_primary,
            "source_methods": existing.source_methods | incoming.source_methods,
            "confidence": _max_optional(existing.confidence, incoming.confidence),
            "description": description,
        }
    )


def merge_fields(
    existing: tuple[DetectedField, ...],
    incoming: tuple[DetectedField, ...],
    policy: FieldTypePolicy = FieldTypePolicy.PREFER_SPECIFIC,
) -> tuple[DetectedField, ...]:
    """Union two field lists by case-insensitive name, existing order first."""
    merged: dict[str, DetectedField] = {f.key: f for f in existing}
    for field in incoming:
        if field.key in merged:
            merged[field.key] = merge_field(merged[field.key], field, policy)
        else:
            merged[field.key] = field

    # Only one primary key may survive: the first one in merged order.
    result: list[DetectedField] = []
    primary_seen = False
    for field in merged.values():
        if field.is_primary:
            if primary_seen:
                field = field.model_copy(update={"is_primary": False})
            primary_seen = True
        result.append(field)
    return tuple(result)


def merge_entities(
    existing: DetectedEntity,
    incoming: DetectedEntity,
    policy: FieldTypePolicy = FieldTypePolicy.PREFER_SPECIFIC,
) -> DetectedEntity:
    """Merge two entities with the same key.

    Cross-source merges boost confidence above both inputs and record the
    combined reasoning. Duplicates within one source keep the higher
    confidence and the existing reasoning.
    """
    cross_source = bool(incoming.source_methods - existing.source_methods)

    if cross_source:
        confidence = boost(max(existing.confidence, incoming.confidence), 1)
        reasoning = f"{COMBINED_REASONING_PREFIX}{existing.reasoning} + {incoming.reasoning}"
    else:
        confidence = max(existing.confidence, incoming.confidence)
        reasoning = existing.reasoning

    # Semantic type follows the more confident report; ties keep the existing one.
    semantic_type = existing.semantic_type
    if incoming.confidence > existing.confidence:
        semantic_type = incoming.semantic_type

    return existing.model_copy(
        update={
            "fields": merge_fields(existing.fields, incoming.fields, policy),
            "confidence": confidence,
            "reasoning": reasoning,
            "semantic_type": semantic_type,
            "source_methods": existing.source_methods | incoming.source_methods,
            "source_element_ids": tuple(dict.fromkeys(existing.source_element_ids + incoming.source_element_ids)),
            "description": existing.description or incoming.description,
        }
    )


def prefer_relationship(existing: SuggestedRelationship, incoming: SuggestedRelationship) -> SuggestedRelationship:
    """Choose between two relationships with the same key.

    Highest confidence wins; on an exact tie the longer reasoning wins; after
    that, the existing one is kept.
    """
    if incoming.confidence > existing.confidence:
        return incoming
    if incoming.confidence == existing.confidence and len(incoming.reasoning) > len(existing.reasoning):
        return incoming
    return existing


def dedupe_relationships(relationships: list[SuggestedRelationship]) -> list[SuggestedRelationship]:
    """Collapse relationships sharing ``(from, to, type)``, in first-seen order."""
    kept: dict[tuple[str, str, str], SuggestedRelationship] = {}
    for relationship in relationships:
        current = kept.get(relationship.key)
        kept[relationship.key] = relationship if current is None else prefer_relationship(current, relationship)
    return list(kept.values())
