"""Single-source result builder.

Wraps one analyzer's raw payload into a `SourceResult`. The builder is the
tolerant edge of the system: it accepts the shapes analyzers actually return
(flat lists or the nested ``{"entities": {"entities": [...], "insights": [...]}}``
form), skips any malformed record with a warning, clamps every score, and never
raises. A payload that is not a mapping at all yields an empty result, so the
fusion engine always has a value to merge.
"""

import logging
import re
from typing import Any, Mapping

from pydantic import ValidationError

from designfusion.analysis import APIEndpoint, HttpMethod, SourceResult
from designfusion.confidence import average, clamp01
from designfusion.entity import DetectedEntity, SourceMethod
from designfusion.merge import FieldTypePolicy, dedupe_relationships, merge_entities
from designfusion.normalizer import (
    DEFAULT_ENTITY_CONFIDENCE,
    InvalidEntityName,
    canonical_entity_name,
    normalize_entity,
)
from designfusion.raw import RawEndpointRecord, RawEntityRecord, RawRelationshipRecord
from designfusion.relationship import RelationshipType, SuggestedRelationship

logger = logging.getLogger(__name__)

_RELATIONSHIP_TYPE_ALIASES: dict[str, RelationshipType] = {
    "onetoone": RelationshipType.ONE_TO_ONE,
    "11": RelationshipType.ONE_TO_ONE,
    "onetomany": RelationshipType.ONE_TO_MANY,
    "1n": RelationshipType.ONE_TO_MANY,
    "1m": RelationshipType.ONE_TO_MANY,
    "manytomany": RelationshipType.MANY_TO_MANY,
    "nm": RelationshipType.MANY_TO_MANY,
    "mn": RelationshipType.MANY_TO_MANY,
}

_INSIGHT_KEYS = ("insights", "spatialConsiderations", "performanceConsiderations")


def normalize_relationship_type(raw_type: str) -> RelationshipType | None:
    """Map spellings such as ``"one-to-many"`` or ``"1:N"`` to a `RelationshipType`."""
    return _RELATIONSHIP_TYPE_ALIASES.get(re.sub(r"[^a-z0-9]", "", raw_type.lower()))


def _section(payload: Mapping[str, Any], key: str) -> tuple[list[Any], Mapping[str, Any]]:
    """Return the record list under `key` plus the mapping that held it.

    Analyzers either return ``{key: [...]}`` or wrap the list together with
    insights as ``{key: {key: [...], "insights": [...]}}``.
    """
    value = payload.get(key)
    holder: Mapping[str, Any] = payload
    if isinstance(value, Mapping):
        holder = value
        value = value.get(key)
    if value is None:
        return [], holder
    if not isinstance(value, (list, tuple)):
        logger.warning("Expected a list for %r, got %s; ignoring it", key, type(value).__name__)
        return [], holder
    return list(value), holder


def _collect_insights(*holders: Mapping[str, Any]) -> list[str]:
    insights: list[str] = []
    for holder in holders:
        domain = holder.get("businessDomain")
        if isinstance(domain, str) and domain:
            insights.insert(0, f"Business Domain: {domain}")
        for key in _INSIGHT_KEYS:
            values = holder.get(key)
            if isinstance(values, (list, tuple)):
                insights.extend(str(v) for v in values if isinstance(v, str) and v)
    return list(dict.fromkeys(insights))


def _visual_pattern_insights(payload: Mapping[str, Any]) -> list[str]:
    patterns = payload.get("visualPatterns")
    if not isinstance(patterns, (list, tuple)):
        return []
    insights = []
    for pattern in patterns:
        if isinstance(pattern, Mapping) and pattern.get("description"):
            insights.append(f"{pattern.get('type', 'pattern')}: {pattern['description']}")
    return insights


def build_entities(
    records: list[Any],
    method: SourceMethod,
    *,
    add_timestamp_fields: bool = True,
    field_type_policy: FieldTypePolicy = FieldTypePolicy.PREFER_SPECIFIC,
) -> list[DetectedEntity]:
    """Normalize entity records, skipping malformed ones and collapsing duplicates."""
    entities: dict[str, DetectedEntity] = {}
    for raw in records:
        try:
            record = RawEntityRecord.model_validate(raw)
            entity = normalize_entity(record, method, add_timestamp_fields=add_timestamp_fields)
        except (ValidationError, InvalidEntityName) as e:
            logger.warning("Skipping malformed %s entity record %r: %s", method.value, raw, e)
            continue
        if entity.key in entities:
            entities[entity.key] = merge_entities(entities[entity.key], entity, field_type_policy)
        else:
            entities[entity.key] = entity
    return list(entities.values())


def build_relationships(records: list[Any], method: SourceMethod) -> list[SuggestedRelationship]:
    """Validate relationship records; names are canonicalized to match entity names."""
    relationships: list[SuggestedRelationship] = []
    for raw in records:
        try:
            record = RawRelationshipRecord.model_validate(raw)
            from_entity = canonical_entity_name(record.from_entity)
            to_entity = canonical_entity_name(record.to_entity)
        except (ValidationError, InvalidEntityName) as e:
            logger.warning("Skipping malformed %s relationship record %r: %s", method.value, raw, e)
            continue
        relationship_type = normalize_relationship_type(record.type)
        if relationship_type is None:
            logger.warning("Skipping relationship with unknown type %r: %r", record.type, raw)
            continue
        relationships.append(
            SuggestedRelationship(
                from_entity=from_entity,
                to_entity=to_entity,
                type=relationship_type,
                confidence=DEFAULT_ENTITY_CONFIDENCE if record.confidence is None else clamp01(record.confidence),
                reasoning=record.reasoning or f"Suggested by {method.value} analysis",
                foreign_key=record.foreign_key,
            )
        )
    return dedupe_relationships(relationships)


def build_endpoints(records: list[Any]) -> list[APIEndpoint]:
    endpoints: list[APIEndpoint] = []
    for raw in records:
        try:
            record = RawEndpointRecord.model_validate(raw)
            endpoints.append(
                APIEndpoint(
                    method=HttpMethod(record.method.strip().upper()),
                    path=record.path,
                    handler=record.handler or "",
                    description=record.description or "",
                    requires_auth=record.requires_auth,
                )
            )
        except (ValidationError, ValueError) as e:
            logger.warning("Skipping malformed endpoint record %r: %s", raw, e)
    return endpoints


def build_source_result(
    payload: Any,
    method: SourceMethod,
    *,
    add_timestamp_fields: bool = True,
    field_type_policy: FieldTypePolicy = FieldTypePolicy.PREFER_SPECIFIC,
) -> SourceResult:
    """Wrap one analyzer's raw output into a normalized `SourceResult`.

    Args:
        payload: The analyzer's raw output. Text analyzers return
            ``{entities, relationships, endpoints, seedData}``; vision analyzers
            return ``{entities, visualPatterns, relationships, insights, confidence}``.
        method: Which analyzer produced the payload.
        add_timestamp_fields: Passed through to the normalizer.
        field_type_policy: Used when one source reports the same entity twice.

    Returns:
        A `SourceResult`; empty if the payload is not a mapping.
    """
    if not isinstance(payload, Mapping):
        logger.warning("%s analysis payload is not a mapping (%s); treating it as empty",
                       method.value, type(payload).__name__)
        return SourceResult(method=method)

    entity_records, entity_holder = _section(payload, "entities")
    relationship_records, relationship_holder = _section(payload, "relationships")
    endpoint_records, _ = _section(payload, "endpoints")

    entities = build_entities(
        entity_records,
        method,
        add_timestamp_fields=add_timestamp_fields,
        field_type_policy=field_type_policy,
    )
    relationships = build_relationships(relationship_records, method)
    endpoints = build_endpoints(endpoint_records)

    holders = [payload]
    for holder in (entity_holder, relationship_holder):
        if all(holder is not seen for seen in holders):
            holders.append(holder)
    insights = _collect_insights(*holders)
    if method == SourceMethod.VISION:
        insights.extend(_visual_pattern_insights(payload))

    if "confidence" in payload:
        confidence = clamp01(payload.get("confidence"))
    else:
        confidence = average(e.confidence for e in entities)

    logger.debug(
        "Built %s source result: %d entities, %d relationships, %d endpoints",
        method.value, len(entities), len(relationships), len(endpoints),
    )
    return SourceResult(
        method=method,
        entities=tuple(entities),
        relationships=tuple(relationships),
        endpoints=tuple(endpoints),
        insights=tuple(insights),
        confidence=confidence,
    )
