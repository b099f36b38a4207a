"""Design input representation: the UI description being analyzed.

Design files come from tools such as Figma or Penpot as a tree of nodes. Only
the parts the analysis needs are modeled explicitly (identifier, name, type,
text, bounding box, children); platform-specific properties are kept as
pydantic extras so nothing is lost on the way to an analyzer.
"""

import hashlib
import json
import logging
from typing import Any, Iterator, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class BoundingBox(BaseModel, frozen=True):
    """Absolute position and size of a node on the canvas."""

    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0


class DesignNode(BaseModel):
    """One node of the design tree."""

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    id: str = Field(description="Design-tool node identifier.")
    name: str = Field(default="", description="Layer name given by the designer.")
    type: str = Field(default="", description="Design-tool node type, e.g. 'TEXT' or 'FRAME'.")
    characters: str | None = Field(default=None, description="Text content of TEXT nodes.")
    children: tuple["DesignNode", ...] = Field(default=())
    absolute_bounding_box: BoundingBox | None = Field(default=None, alias="absoluteBoundingBox")

    def iter_nodes(self) -> Iterator["DesignNode"]:
        """Yield this node and all of its descendants, depth-first."""
        yield self
        for child in self.children:
            yield from child.iter_nodes()


class DesignData(BaseModel):
    """A complete design file handed to the analyzers."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    source: str = Field(default="figma", description="Design tool, e.g. 'figma' or 'penpot'.")
    file_id: str = Field(default="", alias="fileId")
    file_name: str = Field(default="", alias="fileName")
    nodes: tuple[DesignNode, ...] = Field(default=())
    metadata: dict = Field(default_factory=dict)

    def iter_nodes(self) -> Iterator[DesignNode]:
        """Yield every node in the design, depth-first, in document order."""
        for node in self.nodes:
            yield from node.iter_nodes()

    def content_hash(self) -> str:
        """Return a SHA-256 digest of the design's canonical JSON form."""
        payload = json.dumps(self.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    @classmethod
    def coerce(cls, raw: "DesignData | Mapping[str, Any] | None") -> "DesignData":
        """Build a DesignData from loosely structured input without raising.

        Well-formed input is validated as a whole. Otherwise each top-level
        node is validated on its own and malformed nodes are dropped with a
        warning, so a single bad node does not discard the whole design.
        """
        if isinstance(raw, DesignData):
            return raw
        if not isinstance(raw, Mapping):
            if raw is not None:
                logger.warning("Design input is not a mapping (%s); using an empty design", type(raw).__name__)
            return cls()
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            logger.warning("Design input failed validation, salvaging nodes individually: %s", e.error_count())

        nodes: list[DesignNode] = []
        raw_nodes = raw.get("nodes")
        for raw_node in raw_nodes if isinstance(raw_nodes, (list, tuple)) else ():
            try:
                nodes.append(DesignNode.model_validate(raw_node))
            except ValidationError:
                logger.warning("Dropping malformed design node: %r", raw_node)
        header = {k: raw.get(k) for k in ("source", "fileId", "fileName") if isinstance(raw.get(k), str)}
        return cls.model_validate({**header, "nodes": nodes})


class DesignScreenshot(BaseModel):
    """A rendered page of the design, as handed to the vision analyzer."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    page_id: str = Field(alias="pageId")
    name: str = Field(default="")
    image_url: str = Field(alias="imageUrl")
