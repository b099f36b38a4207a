"""Result models: what a single analyzer produced and what fusion hands downstream."""

from enum import Enum

from pydantic import BaseModel, Field

from designfusion.entity import DetectedEntity, SourceMethod
from designfusion.relationship import SuggestedRelationship


class AnalysisMethod(str, Enum):
    """Which sources a fused result was built from."""

    COMBINED = "combined"
    TEXT_ONLY = "text_only"
    VISION_ONLY = "vision_only"
    RULE_BASED_FALLBACK = "rule_based_fallback"


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class APIEndpoint(BaseModel, frozen=True):
    """An API endpoint suggested for the inferred data model."""

    method: HttpMethod
    path: str
    handler: str = ""
    description: str = ""
    requires_auth: bool = False


class SourceResult(BaseModel, frozen=True):
    """Normalized output of one analyzer.

    Produced by `designfusion.builder.build_source_result`, which guarantees
    that every entity went through the normalizer and every score is in range.

    Attributes:
        method: The analyzer this result came from.
        entities: Normalized entities, de-duplicated within this source.
        relationships: Relationships reported by the analyzer.
        endpoints: API endpoints reported by the analyzer, if any.
        insights: Advisory strings; never used for logic.
        confidence: The analyzer's self-reported overall confidence.
    """

    method: SourceMethod
    entities: tuple[DetectedEntity, ...] = ()
    relationships: tuple[SuggestedRelationship, ...] = ()
    endpoints: tuple[APIEndpoint, ...] = ()
    insights: tuple[str, ...] = ()
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @property
    def is_empty(self) -> bool:
        return not self.entities


class CombinedAnalysis(BaseModel, frozen=True):
    """The fused data model handed to downstream generators.

    Attributes:
        entities: De-duplicated, merged entities in first-seen order.
        relationships: De-duplicated relationships, highest confidence first.
        endpoints: Suggested API endpoints.
        analysis_method: Which sources contributed.
        confidence_score: Overall confidence of the fused model.
        vision_insights: Advisory notes from (or about) the vision analyzer.
        text_insights: Advisory notes from (or about) the text analyzer.
    """

    entities: tuple[DetectedEntity, ...] = ()
    relationships: tuple[SuggestedRelationship, ...] = ()
    endpoints: tuple[APIEndpoint, ...] = ()
    analysis_method: AnalysisMethod
    confidence_score: float = Field(ge=0.0, le=1.0)
    vision_insights: tuple[str, ...] = ()
    text_insights: tuple[str, ...] = ()

    def get_entity(self, name: str) -> DetectedEntity | None:
        """Look up an entity by name, case-insensitively."""
        wanted = name.lower()
        for entity in self.entities:
            if entity.key == wanted:
                return entity
        return None
