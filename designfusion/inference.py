"""Rule-based relationship inference between normalized entities.

Relationships are proposed from the entities' semantic types alone, using the
directional `RELATIONSHIP_TABLE`. For each unordered pair the table is checked
in both directions; the direction found determines ``from``/``to``.

Confidence grows with the amount of design evidence behind the two entities
(number of originating nodes, capped) and with the entities' own confidence.
"""

import logging
from itertools import combinations
from typing import NamedTuple, Sequence

from designfusion.confidence import clamp01
from designfusion.entity import DetectedEntity, SemanticType
from designfusion.normalizer import snake_case
from designfusion.relationship import RelationshipType, SuggestedRelationship, sort_relationships

logger = logging.getLogger(__name__)

MIN_RELATIONSHIP_CONFIDENCE = 0.3
"""Proposals scoring below this are discarded. Not tunable per call."""

BASE_RELATIONSHIP_CONFIDENCE = 0.5
SOURCE_ELEMENT_WEIGHT = 0.05
MAX_COUNTED_SOURCE_ELEMENTS = 4
ENTITY_CONFIDENCE_WEIGHT = 0.15


class RelationshipRule(NamedTuple):
    type: RelationshipType
    reasoning: str


RELATIONSHIP_TABLE: dict[tuple[SemanticType, SemanticType], RelationshipRule] = {
    (SemanticType.USER, SemanticType.CONTENT): RelationshipRule(
        RelationshipType.ONE_TO_MANY, "Users typically create multiple content items"
    ),
    (SemanticType.USER, SemanticType.FORM): RelationshipRule(
        RelationshipType.ONE_TO_MANY, "Users can submit multiple forms"
    ),
    (SemanticType.SPATIAL, SemanticType.CONTENT): RelationshipRule(
        RelationshipType.ONE_TO_MANY, "Spatial containers hold multiple content items"
    ),
    (SemanticType.SPATIAL, SemanticType.FORM): RelationshipRule(
        RelationshipType.ONE_TO_MANY, "Spatial containers can contain multiple forms"
    ),
    (SemanticType.CONTENT, SemanticType.MEDIA): RelationshipRule(
        RelationshipType.MANY_TO_MANY, "Content items can reference multiple media assets"
    ),
    (SemanticType.FORM, SemanticType.METADATA): RelationshipRule(
        RelationshipType.ONE_TO_ONE, "Forms have associated metadata"
    ),
}


def relationship_confidence(a: DetectedEntity, b: DetectedEntity) -> float:
    """Score a proposed relationship between `a` and `b`."""
    element_count = min(len(a.source_element_ids) + len(b.source_element_ids), MAX_COUNTED_SOURCE_ELEMENTS)
    return clamp01(
        BASE_RELATIONSHIP_CONFIDENCE
        + SOURCE_ELEMENT_WEIGHT * element_count
        + ENTITY_CONFIDENCE_WEIGHT * (a.confidence + b.confidence)
    )


def propose_relationship(a: DetectedEntity, b: DetectedEntity) -> SuggestedRelationship | None:
    """Propose a relationship for one pair, or None if the table has no entry."""
    rule = RELATIONSHIP_TABLE.get((a.semantic_type, b.semantic_type))
    source, target = a, b
    if rule is None:
        rule = RELATIONSHIP_TABLE.get((b.semantic_type, a.semantic_type))
        source, target = b, a
    if rule is None:
        return None

    confidence = relationship_confidence(source, target)
    if confidence < MIN_RELATIONSHIP_CONFIDENCE:
        return None

    return SuggestedRelationship(
        from_entity=source.name,
        to_entity=target.name,
        type=rule.type,
        confidence=confidence,
        reasoning=rule.reasoning,
        foreign_key=f"{snake_case(source.name)}_id" if rule.type == RelationshipType.ONE_TO_MANY else None,
    )


def infer_relationships(entities: Sequence[DetectedEntity]) -> list[SuggestedRelationship]:
    """Propose relationships for every unordered pair of distinct entities.

    Returns:
        Proposals sorted by confidence descending, ties broken by
        ``(from, to, type)`` ascending.
    """
    proposals: list[SuggestedRelationship] = []
    for a, b in combinations(entities, 2):
        if a.key == b.key:
            continue
        relationship = propose_relationship(a, b)
        if relationship is not None:
            proposals.append(relationship)
    logger.debug("Inferred %d relationships from %d entities", len(proposals), len(entities))
    return sort_relationships(proposals)
