"""Deterministic, non-AI analysis of a design from its structure alone.

Used when neither analyzer produced anything. Design nodes whose layer names
contain a semantic keyword (see `designfusion.normalizer.SEMANTIC_RULES`)
become entity candidates; text and input nodes nested inside them become
columns. Nodes with the same canonical name collapse into one entity, and
entities backed by more nodes get a higher, but always modest, confidence.

The heuristic output goes through the same builder and normalizer as model
output, so it satisfies every invariant of a normal source result.
"""

import logging
import re
from typing import Any, Iterator, Sequence

from designfusion.analysis import APIEndpoint, HttpMethod, SourceResult
from designfusion.builder import build_source_result
from designfusion.confidence import clamp01
from designfusion.design import DesignData, DesignNode
from designfusion.entity import DetectedEntity, FieldType, SemanticType, SourceMethod
from designfusion.normalizer import classify_semantic_type, snake_case

logger = logging.getLogger(__name__)

HEURISTIC_BASE_CONFIDENCE = 0.4
HEURISTIC_NODE_WEIGHT = 0.1
MAX_COUNTED_NODES = 3
CONTENT_FALLBACK_CONFIDENCE = 0.4

# Trailing layer-name words that describe the widget, not the data.
UI_SUFFIXES = frozenset(
    {"card", "list", "section", "row", "tile", "view", "screen", "page", "panel", "wrapper", "component", "button"}
)
FIELD_NODE_KEYWORDS = ("input", "field", "checkbox", "toggle", "select", "textarea", "label")
FIELD_NOISE_WORDS = frozenset({"input", "field", "label", "text", "textarea", "select"})

FIELD_TYPE_HINTS: tuple[tuple[tuple[str, ...], FieldType], ...] = (
    (("location", "position", "coordinates", "coords", "latlng"), FieldType.POINT),
    (("is", "has", "enabled", "active", "checkbox", "toggle", "agree"), FieldType.BOOLEAN),
    (("date", "time", "at", "on", "birthday", "deadline"), FieldType.DATE),
    (("price", "amount", "count", "qty", "quantity", "number", "age", "rating", "total", "score"), FieldType.NUMBER),
    (("tags", "categories", "items"), FieldType.ARRAY),
)

_TRAILING_NUMBER = re.compile(r"[\s_-]*\d+$")


def entity_label(node_name: str) -> str:
    """Strip widget words and numbering from a layer name (``"Product Card 2"`` -> ``"Product"``)."""
    words = _TRAILING_NUMBER.sub("", node_name).split()
    while len(words) > 1 and words[-1].lower() in UI_SUFFIXES:
        words.pop()
    return " ".join(words) if words else node_name


def infer_field_type(field_name: str) -> FieldType:
    words = field_name.split("_")
    for hints, field_type in FIELD_TYPE_HINTS:
        if any(word in hints for word in words):
            return field_type
    return FieldType.STRING


def _field_name(node: DesignNode) -> str:
    words = [w for w in snake_case(node.name).split("_") if w and w not in FIELD_NOISE_WORDS]
    return "_".join(words)


def _is_field_node(node: DesignNode) -> bool:
    if node.type.upper() == "TEXT":
        return True
    lowered = node.name.lower()
    return any(keyword in lowered for keyword in FIELD_NODE_KEYWORDS)


def _iter_entity_nodes(nodes: Sequence[DesignNode]) -> Iterator[DesignNode]:
    """Yield the outermost nodes whose names carry a semantic keyword."""
    for node in nodes:
        label = entity_label(node.name)
        if label.strip() and classify_semantic_type(label) != SemanticType.METADATA:
            yield node
            continue
        yield from _iter_entity_nodes(node.children)


class RuleBasedAnalyzer:
    """Structural keyword analysis of a design, with no model calls.

    Args:
        add_timestamp_fields: Passed through to the normalizer.
    """

    def __init__(self, *, add_timestamp_fields: bool = True) -> None:
        self.add_timestamp_fields = add_timestamp_fields

    def extract_payload(self, design: DesignData) -> dict[str, Any]:
        """Build an analyzer-shaped payload from the design's node names."""
        groups: dict[str, dict[str, Any]] = {}
        for node in _iter_entity_nodes(design.nodes):
            label = entity_label(node.name)
            key = snake_case(label)
            if not key:
                continue
            group = groups.setdefault(key, {"name": label, "node_ids": [], "fields": {}, "has_bounds": False})
            group["node_ids"].append(node.id)
            group["has_bounds"] = group["has_bounds"] or node.absolute_bounding_box is not None
            for child in node.iter_nodes():
                if child is node or not _is_field_node(child):
                    continue
                field_name = _field_name(child)
                if field_name and field_name != "id":
                    group["fields"].setdefault(
                        field_name,
                        {"name": field_name, "type": infer_field_type(field_name).value, "required": False},
                    )

        entities = []
        for group in groups.values():
            count = min(len(group["node_ids"]), MAX_COUNTED_NODES)
            fields = list(group["fields"].values())
            if group["has_bounds"] and classify_semantic_type(group["name"]) == SemanticType.SPATIAL:
                fields.append({"name": "position", "type": FieldType.POINT.value, "required": True})
            entities.append(
                {
                    "name": group["name"],
                    "fields": fields,
                    "sourceElements": group["node_ids"],
                    "confidence": clamp01(HEURISTIC_BASE_CONFIDENCE + HEURISTIC_NODE_WEIGHT * count),
                    "reasoning": f"Inferred from {len(group['node_ids'])} design node(s) named like '{group['name']}'",
                }
            )

        text_nodes = [n for n in design.iter_nodes() if n.type.upper() == "TEXT" and n.characters]
        if not entities and text_nodes:
            entities.append(
                {
                    "name": "Content",
                    "tableName": "content_items",
                    "fields": [
                        {"name": "title", "type": "string", "required": True},
                        {"name": "content", "type": "string"},
                    ],
                    "sourceElements": [n.id for n in text_nodes[:5]],
                    "confidence": CONTENT_FALLBACK_CONFIDENCE,
                    "reasoning": f"Inferred from {len(text_nodes)} text nodes in design",
                }
            )

        node_count = sum(1 for _ in design.iter_nodes())
        return {
            "entities": entities,
            "insights": [f"Rule-based analysis generated {len(entities)} entities from {node_count} design nodes"],
        }

    def analyze(self, design: DesignData) -> SourceResult:
        """Run the heuristic pass and normalize its output."""
        payload = self.extract_payload(design)
        result = build_source_result(payload, SourceMethod.TEXT, add_timestamp_fields=self.add_timestamp_fields)
        logger.info("Rule-based analysis found %d entities", len(result.entities))
        return result


def fallback_endpoints(entities: Sequence[DetectedEntity]) -> list[APIEndpoint]:
    """Standard CRUD endpoints for each entity, used when no analyzer suggested any."""
    endpoints: list[APIEndpoint] = []
    for entity in entities:
        table = entity.table_name
        singular = snake_case(entity.name)
        endpoints.extend(
            [
                APIEndpoint(method=HttpMethod.GET, path=f"/{table}", handler=f"list_{table}",
                            description=f"Get all {table}"),
                APIEndpoint(method=HttpMethod.GET, path=f"/{table}/:id", handler=f"get_{singular}",
                            description=f"Get {entity.name} by ID"),
                APIEndpoint(method=HttpMethod.POST, path=f"/{table}", handler=f"create_{singular}",
                            description=f"Create new {entity.name}", requires_auth=True),
                APIEndpoint(method=HttpMethod.PUT, path=f"/{table}/:id", handler=f"update_{singular}",
                            description=f"Update {entity.name}", requires_auth=True),
                APIEndpoint(method=HttpMethod.DELETE, path=f"/{table}/:id", handler=f"delete_{singular}",
                            description=f"Delete {entity.name}", requires_auth=True),
            ]
        )
    return endpoints
