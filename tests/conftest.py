"""Test fixtures and mock analyzers.

This module provides:
- Mock implementations of the analyzer interfaces (scripted text and vision
  analyzers, an always-failing analyzer, a slow analyzer for concurrency tests)
- Factory fixtures for raw analyzer records and designs
- Entity and source-result builders for fusion tests

Raw payloads use the camelCase shape the analyzers' models answer with.
"""

import asyncio
from typing import Any, Callable, Mapping, Sequence

import pytest

from designfusion.analysis import SourceResult
from designfusion.builder import build_source_result
from designfusion.design import DesignData, DesignScreenshot
from designfusion.entity import SourceMethod
from designfusion.pipeline.interfaces import TextAnalyzerInterface, VisionAnalyzerInterface

# --- Mock analyzers ---


class MockTextAnalyzer(TextAnalyzerInterface):
    """Text analyzer returning a fixed payload and counting its calls."""

    def __init__(self, payload: Mapping[str, Any] | None = None, delay: float = 0.0):
        self.payload = payload if payload is not None else {"entities": []}
        self.delay = delay
        self.calls = 0

    async def analyze(self, design: DesignData) -> Mapping[str, Any]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.payload


class MockVisionAnalyzer(VisionAnalyzerInterface):
    """Vision analyzer returning a fixed payload and recording the screenshots it saw."""

    def __init__(self, payload: Mapping[str, Any] | None = None, delay: float = 0.0):
        self.payload = payload if payload is not None else {"entities": [], "confidence": 0.0}
        self.delay = delay
        self.calls = 0
        self.seen: list[DesignScreenshot] = []

    async def analyze_screenshots(self, screenshots: Sequence[DesignScreenshot]) -> Mapping[str, Any]:
        self.calls += 1
        self.seen.extend(screenshots)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.payload


class FailingTextAnalyzer(TextAnalyzerInterface):
    """Text analyzer whose transport always fails."""

    def __init__(self, message: str = "API request timed out"):
        self.message = message
        self.calls = 0

    async def analyze(self, design: DesignData) -> Mapping[str, Any]:
        self.calls += 1
        raise ConnectionError(self.message)


class FailingVisionAnalyzer(VisionAnalyzerInterface):
    """Vision analyzer whose transport always fails."""

    def __init__(self, message: str = "rate limit exceeded"):
        self.message = message
        self.calls = 0

    async def analyze_screenshots(self, screenshots: Sequence[DesignScreenshot]) -> Mapping[str, Any]:
        self.calls += 1
        raise RuntimeError(self.message)


# --- Factories ---


def raw_entity(name: str, confidence: float | None = 0.8, fields: list | None = None, **extra: Any) -> dict:
    """Build a raw entity record the way an analyzer would return it."""
    record: dict[str, Any] = {
        "name": name,
        "fields": fields if fields is not None else [{"name": "title", "type": "string", "required": True}],
        "confidence": confidence,
    }
    record.update(extra)
    return record


def raw_relationship(source: str, target: str, type: str = "oneToMany", confidence: float = 0.8, **extra: Any) -> dict:
    record: dict[str, Any] = {"from": source, "to": target, "type": type, "confidence": confidence}
    record.update(extra)
    return record


def design_with_nodes(*nodes: dict, file_name: str = "Test Design") -> DesignData:
    return DesignData.model_validate({"fileId": "file-1", "fileName": file_name, "nodes": list(nodes)})


def text_node(node_id: str, name: str, characters: str | None = None) -> dict:
    return {"id": node_id, "name": name, "type": "TEXT", "characters": characters or name}


def frame_node(node_id: str, name: str, *children: dict, bounds: dict | None = None) -> dict:
    node: dict[str, Any] = {"id": node_id, "name": name, "type": "FRAME", "children": list(children)}
    if bounds is not None:
        node["absoluteBoundingBox"] = bounds
    return node


def text_result(*records: dict, **payload: Any) -> SourceResult:
    return build_source_result({"entities": list(records), **payload}, SourceMethod.TEXT)


def vision_result(*records: dict, **payload: Any) -> SourceResult:
    return build_source_result({"entities": list(records), **payload}, SourceMethod.VISION)


# --- Fixtures ---


@pytest.fixture
def make_raw_entity() -> Callable[..., dict]:
    return raw_entity


@pytest.fixture
def make_raw_relationship() -> Callable[..., dict]:
    return raw_relationship


@pytest.fixture
def make_text_result() -> Callable[..., SourceResult]:
    return text_result


@pytest.fixture
def make_vision_result() -> Callable[..., SourceResult]:
    return vision_result


@pytest.fixture
def user_profile_design() -> DesignData:
    """A design whose only meaningful layer is literally named "User Profile"."""
    return design_with_nodes(
        frame_node(
            "1:1",
            "User Profile",
            text_node("1:2", "Display Name"),
            text_node("1:3", "Email Input", "jane@example.com"),
        ),
    )


@pytest.fixture
def shop_design() -> DesignData:
    """A storefront page with repeated product cards and a signup form."""
    return design_with_nodes(
        frame_node(
            "0:1",
            "Home Page",
            frame_node("2:1", "Product Card 1", text_node("2:2", "Price"), text_node("2:3", "Product Title")),
            frame_node("3:1", "Product Card 2", text_node("3:2", "Price")),
            frame_node("4:1", "Signup Form", {"id": "4:2", "name": "Email Input", "type": "RECTANGLE"}),
        ),
    )


@pytest.fixture
def screenshots() -> list[DesignScreenshot]:
    return [
        DesignScreenshot(page_id="page-1", name="Home", image_url="https://example.com/home.png"),
        DesignScreenshot(page_id="page-2", name="Profile", image_url="https://example.com/profile.png"),
    ]


@pytest.fixture
def text_analyzer() -> MockTextAnalyzer:
    return MockTextAnalyzer(
        {
            "entities": [raw_entity("product", confidence=0.7, sourceElements=["2:1"])],
            "relationships": [],
            "endpoints": [{"method": "GET", "path": "/products", "handler": "list_products"}],
            "businessDomain": "e-commerce",
        }
    )


@pytest.fixture
def vision_analyzer() -> MockVisionAnalyzer:
    return MockVisionAnalyzer(
        {
            "entities": [raw_entity("Product", confidence=0.9, sourceElements=["3:1"])],
            "visualPatterns": [{"type": "grid", "description": "Products are laid out as cards"}],
            "insights": ["Cards repeat with identical structure"],
            "confidence": 0.85,
        }
    )
