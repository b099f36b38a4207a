"""Tests for the fallback coordinator.

The coordinator must run both analyzers concurrently, isolate their
failures from each other, never raise for a per-request failure, and reject
impossible configurations at construction time.
"""

import asyncio
import logging
import time

import pytest

from designfusion.analysis import AnalysisMethod
from designfusion.config import AnalysisConfig, ConfigurationError
from designfusion.coordinator import AnalysisCoordinator, build_cache, coerce_screenshots
from designfusion.entity import SemanticType, SourceMethod
from designfusion.pipeline.caching import FileBasedAnalysisCache, InMemoryAnalysisCache

from tests.conftest import (
    FailingTextAnalyzer,
    FailingVisionAnalyzer,
    MockTextAnalyzer,
    MockVisionAnalyzer,
    raw_entity,
)

VISION_ON = AnalysisConfig(enable_vision=True)


class TestConstruction:
    def test_vision_enabled_without_analyzer(self):
        with pytest.raises(ConfigurationError):
            AnalysisCoordinator(MockTextAnalyzer(), config=VISION_ON)

    def test_defaults(self):
        coordinator = AnalysisCoordinator(MockTextAnalyzer())
        assert coordinator.config == AnalysisConfig()
        assert coordinator.cache is None

    def test_unusable_cache_dir(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("occupied")
        config = AnalysisConfig(cache_enabled=True, cache_dir=blocker / "cache")
        with pytest.raises(ConfigurationError):
            AnalysisCoordinator(MockTextAnalyzer(), config=config)

    def test_build_cache(self, tmp_path):
        assert build_cache(AnalysisConfig()) is None
        assert isinstance(build_cache(AnalysisConfig(cache_enabled=True)), InMemoryAnalysisCache)
        cache = build_cache(AnalysisConfig(cache_enabled=True, cache_dir=tmp_path))
        assert isinstance(cache, FileBasedAnalysisCache)


class TestAnalyze:
    async def test_combined(self, text_analyzer, vision_analyzer, shop_design, screenshots):
        coordinator = AnalysisCoordinator(text_analyzer, vision_analyzer, config=VISION_ON)
        result = await coordinator.analyze(shop_design, screenshots)

        assert result.analysis_method == AnalysisMethod.COMBINED
        assert len(result.entities) == 1
        product = result.entities[0]
        assert product.name == "Product"
        assert 0.9 < product.confidence <= 1.0
        assert product.source_methods == frozenset({SourceMethod.TEXT, SourceMethod.VISION})
        assert result.text_insights[0] == "Business Domain: e-commerce"
        assert "grid: Products are laid out as cards" in result.vision_insights
        assert [e.path for e in result.endpoints] == ["/products"]
        assert vision_analyzer.seen == screenshots

    async def test_accepts_raw_json(self, text_analyzer):
        coordinator = AnalysisCoordinator(text_analyzer)
        result = await coordinator.analyze(
            {"fileId": "f", "nodes": [{"id": "1", "name": "Product", "type": "FRAME"}, {"name": "no id"}]}
        )
        assert result.analysis_method == AnalysisMethod.TEXT_ONLY

    async def test_huge_confidence_does_not_raise(self):
        coordinator = AnalysisCoordinator(MockTextAnalyzer({"entities": [raw_entity("Order", confidence=10**400)]}))
        result = await coordinator.analyze({"nodes": []})
        assert result.analysis_method == AnalysisMethod.TEXT_ONLY
        assert result.get_entity("Order").confidence == 1.0

    async def test_vision_disabled_skips_analyzer(self, text_analyzer, vision_analyzer, shop_design, screenshots):
        coordinator = AnalysisCoordinator(text_analyzer, vision_analyzer)
        result = await coordinator.analyze(shop_design, screenshots)
        assert vision_analyzer.calls == 0
        assert result.analysis_method == AnalysisMethod.TEXT_ONLY

    async def test_no_screenshots_skips_vision(self, text_analyzer, vision_analyzer, shop_design):
        coordinator = AnalysisCoordinator(text_analyzer, vision_analyzer, config=VISION_ON)
        result = await coordinator.analyze(shop_design, [])
        assert vision_analyzer.calls == 0
        assert result.analysis_method == AnalysisMethod.TEXT_ONLY

    async def test_vision_failure_keeps_text(self, text_analyzer, shop_design, screenshots, caplog):
        coordinator = AnalysisCoordinator(text_analyzer, FailingVisionAnalyzer(), config=VISION_ON)
        with caplog.at_level(logging.WARNING):
            result = await coordinator.analyze(shop_design, screenshots)
        assert result.analysis_method == AnalysisMethod.TEXT_ONLY
        assert [e.name for e in result.entities] == ["Product"]
        assert result.vision_insights == ("Vision analysis failed: rate limit exceeded",)
        assert "Vision analysis failed" in caplog.text

    async def test_text_failure_keeps_vision(self, vision_analyzer, shop_design, screenshots):
        coordinator = AnalysisCoordinator(FailingTextAnalyzer(), vision_analyzer, config=VISION_ON)
        result = await coordinator.analyze(shop_design, screenshots)
        assert result.analysis_method == AnalysisMethod.VISION_ONLY
        assert result.confidence_score == pytest.approx(0.9)
        assert "Text analysis failed: API request timed out" in result.text_insights

    async def test_both_fail_falls_back_to_rules(self, user_profile_design, screenshots):
        coordinator = AnalysisCoordinator(FailingTextAnalyzer(), FailingVisionAnalyzer(), config=VISION_ON)
        result = await coordinator.analyze(user_profile_design, screenshots)
        assert result.analysis_method == AnalysisMethod.RULE_BASED_FALLBACK
        assert result.entities
        assert result.entities[0].semantic_type == SemanticType.USER
        assert result.confidence_score > 0
        assert "Text analysis failed: API request timed out" in result.text_insights
        assert result.vision_insights == ("Vision analysis failed: rate limit exceeded",)

    async def test_empty_text_and_failing_vision(self, screenshots):
        """Zero text entities plus a vision failure on a design with no signal scores 0."""
        coordinator = AnalysisCoordinator(MockTextAnalyzer({"entities": []}), FailingVisionAnalyzer(), config=VISION_ON)
        design = {"nodes": [{"id": "1", "name": "Rectangle", "type": "RECTANGLE"}]}
        result = await coordinator.analyze(design, screenshots)
        assert result.analysis_method == AnalysisMethod.RULE_BASED_FALLBACK
        assert result.confidence_score == 0.0
        assert result.entities == ()

    async def test_empty_text_and_failing_vision_with_signal(self, user_profile_design, screenshots):
        coordinator = AnalysisCoordinator(MockTextAnalyzer({"entities": []}), FailingVisionAnalyzer(), config=VISION_ON)
        result = await coordinator.analyze(user_profile_design, screenshots)
        assert result.analysis_method == AnalysisMethod.RULE_BASED_FALLBACK
        assert 0 < result.confidence_score < 1

    async def test_malformed_payload_does_not_raise(self, user_profile_design):
        coordinator = AnalysisCoordinator(MockTextAnalyzer(["not", "a", "mapping"]))  # type: ignore[arg-type]
        result = await coordinator.analyze(user_profile_design)
        assert result.analysis_method == AnalysisMethod.RULE_BASED_FALLBACK

    async def test_no_analyzers(self, user_profile_design):
        result = await AnalysisCoordinator().analyze(user_profile_design)
        assert result.analysis_method == AnalysisMethod.RULE_BASED_FALLBACK

    async def test_analyzers_run_concurrently(self, shop_design, screenshots):
        text = MockTextAnalyzer({"entities": [raw_entity("Product")]}, delay=0.2)
        vision = MockVisionAnalyzer({"entities": [raw_entity("Product")]}, delay=0.2)
        coordinator = AnalysisCoordinator(text, vision, config=VISION_ON)

        start = time.perf_counter()
        result = await coordinator.analyze(shop_design, screenshots)
        elapsed = time.perf_counter() - start

        assert result.analysis_method == AnalysisMethod.COMBINED
        assert elapsed < 0.38

    async def test_concurrent_requests_are_independent(self, text_analyzer, shop_design):
        coordinator = AnalysisCoordinator(text_analyzer)
        results = await asyncio.gather(*(coordinator.analyze(shop_design) for _ in range(5)))
        assert all(r == results[0] for r in results)

    async def test_debug_dumps_result(self, text_analyzer, shop_design, caplog):
        coordinator = AnalysisCoordinator(text_analyzer, config=AnalysisConfig(debug=True))
        with caplog.at_level(logging.DEBUG, logger="designfusion.coordinator"):
            await coordinator.analyze(shop_design)
        assert '"analysis_method": "text_only"' in caplog.text

    def test_debug_configures_logger(self, text_analyzer):
        coordinator = AnalysisCoordinator(text_analyzer, config=AnalysisConfig(debug=True))
        assert coordinator._debug_logger.name == "designfusion.coordinator"  # pylint: disable=protected-access
        assert logging.getLogger("designfusion.coordinator").isEnabledFor(logging.DEBUG)

    def test_no_debug_logger_by_default(self, text_analyzer):
        assert AnalysisCoordinator(text_analyzer)._debug_logger is None  # pylint: disable=protected-access


class TestCostOptimized:
    async def test_single_text_call(self, text_analyzer, vision_analyzer, shop_design):
        coordinator = AnalysisCoordinator(text_analyzer, vision_analyzer, config=VISION_ON)
        result = await coordinator.analyze_cost_optimized(shop_design)
        assert result.analysis_method == AnalysisMethod.TEXT_ONLY
        assert text_analyzer.calls == 1
        assert vision_analyzer.calls == 0

    async def test_cached_under_batch_key(self, text_analyzer, shop_design):
        cache = InMemoryAnalysisCache()
        coordinator = AnalysisCoordinator(text_analyzer, cache=cache)

        first = await coordinator.analyze_cost_optimized(shop_design)
        second = await coordinator.analyze_cost_optimized(shop_design)
        assert first == second
        assert text_analyzer.calls == 1

        await coordinator.analyze(shop_design)
        assert text_analyzer.calls == 2

    async def test_failure_falls_back(self, user_profile_design):
        coordinator = AnalysisCoordinator(FailingTextAnalyzer())
        result = await coordinator.analyze_cost_optimized(user_profile_design)
        assert result.analysis_method == AnalysisMethod.RULE_BASED_FALLBACK
        assert "Text analysis failed: API request timed out" in result.text_insights


class TestCaching:
    async def test_repeat_analysis_served_from_cache(self, text_analyzer, vision_analyzer, shop_design, screenshots):
        coordinator = AnalysisCoordinator(text_analyzer, vision_analyzer, config=VISION_ON, cache=InMemoryAnalysisCache())
        first = await coordinator.analyze(shop_design, screenshots)
        second = await coordinator.analyze(shop_design, screenshots)
        assert first == second
        assert text_analyzer.calls == 1
        assert vision_analyzer.calls == 1

    async def test_configured_file_cache_persists(self, text_analyzer, shop_design, tmp_path):
        config = AnalysisConfig(cache_enabled=True, cache_dir=tmp_path)
        await AnalysisCoordinator(text_analyzer, config=config).analyze(shop_design)
        await AnalysisCoordinator(text_analyzer, config=config).analyze(shop_design)
        assert text_analyzer.calls == 1
        assert list(tmp_path.glob("text_analysis_*.json"))

    async def test_failures_are_not_cached(self, shop_design):
        failing = FailingTextAnalyzer()
        coordinator = AnalysisCoordinator(failing, cache=InMemoryAnalysisCache())
        await coordinator.analyze(shop_design)
        await coordinator.analyze(shop_design)
        assert failing.calls == 2


class TestCoerceScreenshots:
    def test_drops_malformed(self, caplog):
        shots = coerce_screenshots([{"pageId": "p1", "imageUrl": "https://x/1.png"}, {"name": "missing url"}, None])
        assert [s.page_id for s in shots] == ["p1"]
        assert "malformed screenshot" in caplog.text

    def test_none(self):
        assert coerce_screenshots(None) == []
