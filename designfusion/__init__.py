"""
Design Fusion - Multi-Source Data Model Inference from UI Designs.

Takes a UI design (a tree of named nodes with text and layout) and infers a
relational data model: entities, fields, relationships and API endpoints. Two
independent, fallible analyzers contribute (one reading the design's text and
structure, one reading rendered screenshots), and their partial results are
fused into a single model with bounded confidence scores:

    coordinator = AnalysisCoordinator(text_analyzer, vision_analyzer,
                                      config=AnalysisConfig(enable_vision=True))
    result = await coordinator.analyze(design, screenshots)
    result.analysis_method   # combined, text_only, vision_only or rule_based_fallback
"""

from designfusion.analysis import (
    AnalysisMethod,
    APIEndpoint,
    CombinedAnalysis,
    HttpMethod,
    SourceResult,
)
from designfusion.builder import build_source_result
from designfusion.config import AnalysisConfig, ConfigurationError
from designfusion.coordinator import AnalysisCoordinator
from designfusion.design import BoundingBox, DesignData, DesignNode, DesignScreenshot
from designfusion.entity import (
    DetectedEntity,
    DetectedField,
    FieldType,
    SemanticType,
    SourceMethod,
)
from designfusion.fusion import FusionEngine
from designfusion.merge import FieldTypePolicy
from designfusion.normalizer import InvalidEntityName
from designfusion.relationship import RelationshipType, SuggestedRelationship
from designfusion.rules import RuleBasedAnalyzer

__all__ = [
    "AnalysisCoordinator",
    "AnalysisConfig",
    "ConfigurationError",
    "FusionEngine",
    "RuleBasedAnalyzer",
    "build_source_result",
    "AnalysisMethod",
    "APIEndpoint",
    "CombinedAnalysis",
    "HttpMethod",
    "SourceResult",
    "BoundingBox",
    "DesignData",
    "DesignNode",
    "DesignScreenshot",
    "DetectedEntity",
    "DetectedField",
    "FieldType",
    "SemanticType",
    "SourceMethod",
    "FieldTypePolicy",
    "InvalidEntityName",
    "RelationshipType",
    "SuggestedRelationship",
]

__version__ = "0.1.0"
