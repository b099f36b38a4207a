"""Relationship model for the inferred data model.

A `SuggestedRelationship` is a directed edge between two detected entities,
named by their canonical entity names:

    - ("User", oneToMany, "Post")
    - ("Post", manyToMany, "Image")

Relationships come from three places: the text analyzer, the vision analyzer,
and the rule-based inferrer in `designfusion.inference`. However many sources
propose the same directed triple, the fused output holds it once.
"""

from enum import Enum

from pydantic import BaseModel, Field


class RelationshipType(str, Enum):
    """Cardinality of a relationship."""

    ONE_TO_ONE = "oneToOne"
    ONE_TO_MANY = "oneToMany"
    MANY_TO_MANY = "manyToMany"


class SuggestedRelationship(BaseModel, frozen=True):
    """A directed, typed relationship between two entities.

    The identity of a relationship for deduplication is its `key`, the
    ``(from_entity, to_entity, type)`` triple. Confidence and reasoning are
    evidence about that triple, not part of its identity.
    """

    from_entity: str = Field(description="Canonical name of the source entity.")
    to_entity: str = Field(description="Canonical name of the target entity.")
    type: RelationshipType
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    reasoning: str = Field(default="")
    foreign_key: str | None = Field(
        default=None,
        description="Suggested foreign key column on the 'many' side.",
    )

    @property
    def key(self) -> tuple[str, str, str]:
        """Deduplication identity: ``(from_entity, to_entity, type)``."""
        return (self.from_entity, self.to_entity, self.type.value)


def sort_relationships(relationships: list[SuggestedRelationship]) -> list[SuggestedRelationship]:
    """Order relationships by confidence descending, then by key ascending.

    The secondary key makes the ordering fully deterministic.
    """
    return sorted(relationships, key=lambda r: (-r.confidence, r.key))
