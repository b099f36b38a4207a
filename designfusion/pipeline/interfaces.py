"""Analyzer interfaces.

The fusion pipeline consumes two independent, fallible analysis sources:

- **Text analysis**: reads the design's node tree (names, text content,
  layout) and proposes entities, relationships and API endpoints.
- **Vision analysis**: reads rendered screenshots of the design and proposes
  entities and visual patterns.

Both return plain mappings in the shape their models produce. Nothing here
validates that shape; the builder (`designfusion.builder.build_source_result`)
does, record by record. Implementations may raise any exception for transport
or model failures; the coordinator isolates them.
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence

from designfusion.design import DesignData, DesignScreenshot


class TextAnalyzerInterface(ABC):
    """Propose a data model from the structure and text of a design.

    Example implementations might use:
        - An LLM prompted with the serialized node tree
        - A hand-written pattern matcher for a known design system
    """

    @abstractmethod
    async def analyze(self, design: DesignData) -> Mapping[str, Any]:
        """Analyze a design's node tree.

        Args:
            design: The coerced design.

        Returns:
            A mapping with any of ``entities``, ``relationships``,
            ``endpoints``, ``seedData``, ``insights`` and ``businessDomain``.
        """


class VisionAnalyzerInterface(ABC):
    """Propose a data model from rendered screenshots of a design."""

    @abstractmethod
    async def analyze_screenshots(self, screenshots: Sequence[DesignScreenshot]) -> Mapping[str, Any]:
        """Analyze screenshots of the design's pages.

        Args:
            screenshots: Rendered pages; the coordinator never calls this with
                an empty sequence.

        Returns:
            A mapping with any of ``entities``, ``visualPatterns``,
            ``relationships``, ``insights`` and ``confidence``. Implementations
            that are disabled return an empty, zero-confidence result.
        """
