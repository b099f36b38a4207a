"""Analyzer interfaces and response caching."""

from designfusion.pipeline.caching import (
    AnalysisCacheConfig,
    AnalysisCacheInterface,
    CachedTextAnalyzer,
    CachedVisionAnalyzer,
    FileBasedAnalysisCache,
    InMemoryAnalysisCache,
    analysis_cache_key,
)
from designfusion.pipeline.interfaces import TextAnalyzerInterface, VisionAnalyzerInterface

__all__ = [
    # Analyzer interfaces
    "TextAnalyzerInterface",
    "VisionAnalyzerInterface",
    # Caching
    "AnalysisCacheConfig",
    "AnalysisCacheInterface",
    "InMemoryAnalysisCache",
    "FileBasedAnalysisCache",
    "CachedTextAnalyzer",
    "CachedVisionAnalyzer",
    "analysis_cache_key",
]
