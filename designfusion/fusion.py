"""Fusion of text and vision analysis results into one data model.

The `FusionEngine` takes zero, one or two `SourceResult` values and produces a
single `CombinedAnalysis`:

**Entity merge:**
    Entities are keyed by their case-insensitive canonical name. Text entities
    are visited first, then vision entities, and the output keeps first-seen
    order. An entity reported by both sources is merged field by field, its
    confidence boosted for agreement, its reasoning combined.

**Relationship merge:**
    Reported relationship endpoints are first respelled to the merged entity
    they name, so "api key" and "API Key" meet on one `APIKey`. Relationships
    from both sources, plus proposals from the rule-based inferrer over the
    merged entities, are then de-duplicated by ``(from, to, type)``, keeping
    the most confident instance.

**Confidence and method:**
    Which sources contributed at least one entity selects the analysis method:

    | text >= 1 | vision >= 1 | analysis_method      |
    |-----------|-------------|----------------------|
    | yes       | yes         | combined             |
    | yes       | no          | text_only            |
    | no        | yes         | vision_only          |
    | no        | no          | rule_based_fallback  |

    With both sources the score is the better source's average entity
    confidence plus a flat combination bonus, clamped to 1. With one source it
    is that source's average. The rule-based fallback scores its heuristic
    entities, or 0 when nothing could be inferred.

Example:
    ```python
    engine = FusionEngine(config)
    text = build_source_result(text_payload, SourceMethod.TEXT)
    vision = build_source_result(vision_payload, SourceMethod.VISION)
    combined = engine.fuse(text, vision, design=design)
    ```
"""

import logging
from typing import Sequence

from designfusion.analysis import AnalysisMethod, CombinedAnalysis, SourceResult
from designfusion.config import AnalysisConfig
from designfusion.confidence import average, clamp01
from designfusion.design import DesignData
from designfusion.entity import DetectedEntity
from designfusion.inference import infer_relationships
from designfusion.merge import dedupe_relationships, merge_entities
from designfusion.relationship import SuggestedRelationship, sort_relationships
from designfusion.rules import RuleBasedAnalyzer, fallback_endpoints

logger = logging.getLogger(__name__)

COMBINATION_BONUS = 0.1
"""Added to the better source's average confidence when both sources contribute."""


def select_analysis_method(text_has_entities: bool, vision_has_entities: bool) -> AnalysisMethod:
    """Map which sources produced entities to the analysis method."""
    if text_has_entities and vision_has_entities:
        return AnalysisMethod.COMBINED
    if text_has_entities:
        return AnalysisMethod.TEXT_ONLY
    if vision_has_entities:
        return AnalysisMethod.VISION_ONLY
    return AnalysisMethod.RULE_BASED_FALLBACK


def combined_confidence(text_entities: Sequence[DetectedEntity], vision_entities: Sequence[DetectedEntity]) -> float:
    """Overall confidence of a fused result, from each source's pre-merge entities."""
    text_avg = average(e.confidence for e in text_entities)
    vision_avg = average(e.confidence for e in vision_entities)
    if text_entities and vision_entities:
        return clamp01(max(text_avg, vision_avg) + COMBINATION_BONUS)
    if text_entities:
        return text_avg
    if vision_entities:
        return vision_avg
    return 0.0


def align_relationship_names(
    relationships: Sequence[SuggestedRelationship],
    entities: Sequence[DetectedEntity],
) -> list[SuggestedRelationship]:
    """Rewrite relationship endpoints to the spelling of the matching entity.

    Names are matched case-insensitively, the same way entities are
    deduplicated. Endpoints that name no entity are left unchanged.
    """
    names = {entity.key: entity.name for entity in entities}
    aligned = []
    for relationship in relationships:
        from_entity = names.get(relationship.from_entity.lower(), relationship.from_entity)
        to_entity = names.get(relationship.to_entity.lower(), relationship.to_entity)
        if (from_entity, to_entity) != (relationship.from_entity, relationship.to_entity):
            relationship = relationship.model_copy(update={"from_entity": from_entity, "to_entity": to_entity})
        aligned.append(relationship)
    return aligned


class FusionEngine:
    """Merges independently produced analysis results.

    The engine is stateless between calls; every `fuse` builds its result from
    scratch.

    Args:
        config: Analysis configuration. Uses `field_type_policy`,
            `infer_relationships` and `add_timestamp_fields`.
        rule_analyzer: Heuristic analyzer for the fallback path. Defaults to a
            `RuleBasedAnalyzer` matching `config`.
    """

    def __init__(self, config: AnalysisConfig | None = None, rule_analyzer: RuleBasedAnalyzer | None = None) -> None:
        self.config = config or AnalysisConfig()
        self.rule_analyzer = rule_analyzer or RuleBasedAnalyzer(add_timestamp_fields=self.config.add_timestamp_fields)

    def merge_entities(self, *sources: Sequence[DetectedEntity]) -> list[DetectedEntity]:
        """Merge entity lists in order; entities sharing a key collapse into one."""
        merged: dict[str, DetectedEntity] = {}
        for entities in sources:
            for entity in entities:
                if entity.key in merged:
                    merged[entity.key] = merge_entities(merged[entity.key], entity, self.config.field_type_policy)
                else:
                    merged[entity.key] = entity
        return list(merged.values())

    def merge_relationships(
        self,
        *sources: Sequence[SuggestedRelationship],
    ) -> list[SuggestedRelationship]:
        """De-duplicate relationships from all sources and order them deterministically."""
        combined: list[SuggestedRelationship] = []
        for relationships in sources:
            combined.extend(relationships)
        return sort_relationships(dedupe_relationships(combined))

    def fuse(
        self,
        text_result: SourceResult | None = None,
        vision_result: SourceResult | None = None,
        *,
        design: DesignData | None = None,
        text_insights: Sequence[str] = (),
        vision_insights: Sequence[str] = (),
    ) -> CombinedAnalysis:
        """Fuse up to two source results into one `CombinedAnalysis`.

        Args:
            text_result: Output of the text analyzer, or None if it was not
                run or failed.
            vision_result: Output of the vision analyzer, or None if it was not
                run or failed.
            design: The analyzed design; used only by the rule-based fallback
                when neither source produced an entity.
            text_insights: Extra advisory notes about the text source.
            vision_insights: Extra advisory notes about the vision source.

        Returns:
            The fused analysis. Never raises for empty or missing sources.
        """
        text_entities = text_result.entities if text_result else ()
        vision_entities = vision_result.entities if vision_result else ()
        method = select_analysis_method(bool(text_entities), bool(vision_entities))

        text_notes = list(text_result.insights if text_result else ()) + list(text_insights)
        vision_notes = list(vision_result.insights if vision_result else ()) + list(vision_insights)

        if method == AnalysisMethod.RULE_BASED_FALLBACK:
            return self._fuse_rule_based(design, text_notes, vision_notes)

        entities = self.merge_entities(text_entities, vision_entities)
        inferred = infer_relationships(entities) if self.config.infer_relationships else []
        relationships = self.merge_relationships(
            align_relationship_names(text_result.relationships if text_result else (), entities),
            align_relationship_names(vision_result.relationships if vision_result else (), entities),
            inferred,
        )

        endpoints = (text_result.endpoints if text_result else ()) or (
            vision_result.endpoints if vision_result else ()
        )
        if not endpoints:
            endpoints = tuple(fallback_endpoints(entities))

        confidence = combined_confidence(text_entities, vision_entities)
        logger.info(
            "Fused %d text and %d vision entities into %d (%s, confidence %.2f)",
            len(text_entities), len(vision_entities), len(entities), method.value, confidence,
        )
        return CombinedAnalysis(
            entities=tuple(entities),
            relationships=tuple(relationships),
            endpoints=tuple(endpoints),
            analysis_method=method,
            confidence_score=confidence,
            text_insights=tuple(text_notes),
            vision_insights=tuple(vision_notes),
        )

    def _fuse_rule_based(
        self,
        design: DesignData | None,
        text_notes: list[str],
        vision_notes: list[str],
    ) -> CombinedAnalysis:
        if design is None:
            logger.warning("No source produced entities and no design was given; returning an empty analysis")
            return CombinedAnalysis(
                analysis_method=AnalysisMethod.RULE_BASED_FALLBACK,
                confidence_score=0.0,
                text_insights=tuple(text_notes),
                vision_insights=tuple(vision_notes),
            )

        heuristic = self.rule_analyzer.analyze(design)
        entities = list(heuristic.entities)
        inferred = infer_relationships(entities) if self.config.infer_relationships else []
        relationships = self.merge_relationships(inferred)
        confidence = average(e.confidence for e in entities)
        logger.info("Using rule-based fallback: %d entities (confidence %.2f)", len(entities), confidence)
        return CombinedAnalysis(
            entities=tuple(entities),
            relationships=tuple(relationships),
            endpoints=tuple(fallback_endpoints(entities)),
            analysis_method=AnalysisMethod.RULE_BASED_FALLBACK,
            confidence_score=confidence,
            text_insights=tuple(text_notes + list(heuristic.insights)),
            vision_insights=tuple(vision_notes),
        )
