"""Fallback coordinator: runs the analyzers and always returns a fused result.

The coordinator is the only place analyzer exceptions are caught. Each
analyzer runs in its own guarded task, so a failing vision call never costs
the text result and vice versa; a failure becomes an advisory insight on the
combined result. When nothing usable comes back the fusion engine falls back
to rule-based analysis of the design itself.

Construction is strict: an impossible configuration (vision enabled without a
vision analyzer, an unusable cache directory) raises `ConfigurationError`
immediately instead of degrading every later request.
"""

import asyncio
import logging
from typing import Any, Mapping, Sequence

from pydantic import ValidationError

from designfusion.analysis import CombinedAnalysis, SourceResult
from designfusion.builder import build_source_result
from designfusion.config import AnalysisConfig, ConfigurationError
from designfusion.design import DesignData, DesignScreenshot
from designfusion.entity import SourceMethod
from designfusion.fusion import FusionEngine
from designfusion.logging import setup_logging
from designfusion.pipeline.caching import (
    BATCH_ANALYSIS,
    AnalysisCacheConfig,
    AnalysisCacheInterface,
    CachedTextAnalyzer,
    CachedVisionAnalyzer,
    FileBasedAnalysisCache,
    InMemoryAnalysisCache,
)
from designfusion.pipeline.interfaces import TextAnalyzerInterface, VisionAnalyzerInterface

logger = logging.getLogger(__name__)


def build_cache(config: AnalysisConfig) -> AnalysisCacheInterface | None:
    """Create the cache described by `config`, or None when caching is off.

    Raises:
        ConfigurationError: If the cache directory cannot be created.
    """
    if not config.cache_enabled:
        return None
    cache_config = AnalysisCacheConfig(
        max_cache_size=config.max_cache_size,
        cache_dir=config.cache_dir,
        max_age_hours=config.cache_max_age_hours,
    )
    if config.cache_dir is None:
        return InMemoryAnalysisCache(cache_config)
    try:
        return FileBasedAnalysisCache(cache_config)
    except OSError as e:
        raise ConfigurationError(f"Cannot use cache directory {config.cache_dir}: {e}") from e


def coerce_screenshots(screenshots: Sequence[Any] | None) -> list[DesignScreenshot]:
    """Validate screenshot descriptors, dropping malformed ones with a warning."""
    result: list[DesignScreenshot] = []
    for raw in screenshots or ():
        if isinstance(raw, DesignScreenshot):
            result.append(raw)
            continue
        try:
            result.append(DesignScreenshot.model_validate(raw))
        except ValidationError:
            logger.warning("Dropping malformed screenshot descriptor: %r", raw)
    return result


class AnalysisCoordinator:
    """Runs text and vision analysis concurrently and fuses whatever succeeds.

    Args:
        text_analyzer: Analyzer for the design's node tree. Optional; without
            it every request falls back to vision or rule-based analysis.
        vision_analyzer: Analyzer for screenshots. Required when
            ``config.enable_vision`` is set.
        config: Analysis settings. Defaults to `AnalysisConfig()`.
        cache: Response cache. When omitted, one is built from `config` if
            ``config.cache_enabled`` is set.

    Raises:
        ConfigurationError: For a configuration that could never work.
    """

    def __init__(
        self,
        text_analyzer: TextAnalyzerInterface | None = None,
        vision_analyzer: VisionAnalyzerInterface | None = None,
        *,
        config: AnalysisConfig | None = None,
        cache: AnalysisCacheInterface | None = None,
    ) -> None:
        self.config = config or AnalysisConfig()
        if self.config.enable_vision and vision_analyzer is None:
            raise ConfigurationError("enable_vision is set but no vision analyzer was supplied")

        self.text_analyzer = text_analyzer
        self.vision_analyzer = vision_analyzer
        self.cache = cache if cache is not None else build_cache(self.config)
        self.engine = FusionEngine(self.config)
        self._debug_logger = setup_logging(logging.DEBUG, name=__name__) if self.config.debug else None

        self._text: TextAnalyzerInterface | None = text_analyzer
        self._batch: TextAnalyzerInterface | None = text_analyzer
        self._vision: VisionAnalyzerInterface | None = vision_analyzer
        if self.cache is not None:
            if text_analyzer is not None:
                self._text = CachedTextAnalyzer(text_analyzer, self.cache)
                self._batch = CachedTextAnalyzer(text_analyzer, self.cache, analysis_type=BATCH_ANALYSIS)
            if vision_analyzer is not None:
                self._vision = CachedVisionAnalyzer(vision_analyzer, self.cache)

    def _build(self, payload: Mapping[str, Any], method: SourceMethod) -> SourceResult:
        return build_source_result(
            payload,
            method,
            add_timestamp_fields=self.config.add_timestamp_fields,
            field_type_policy=self.config.field_type_policy,
        )

    async def _run_text(
        self,
        analyzer: TextAnalyzerInterface | None,
        design: DesignData,
    ) -> tuple[SourceResult | None, list[str]]:
        if analyzer is None:
            return None, []
        try:
            payload = await analyzer.analyze(design)
        except Exception as e:
            logger.warning("Text analysis failed: %s", e)
            return None, [f"Text analysis failed: {e}"]
        return self._build(payload, SourceMethod.TEXT), []

    async def _run_vision(self, screenshots: list[DesignScreenshot]) -> tuple[SourceResult | None, list[str]]:
        if not self.config.enable_vision or self._vision is None:
            return None, []
        if not screenshots:
            logger.info("Vision analysis skipped: no screenshots supplied")
            return None, []
        try:
            payload = await self._vision.analyze_screenshots(screenshots)
        except Exception as e:
            logger.warning("Vision analysis failed: %s", e)
            return None, [f"Vision analysis failed: {e}"]
        return self._build(payload, SourceMethod.VISION), []

    def _finish(self, result: CombinedAnalysis) -> CombinedAnalysis:
        if self._debug_logger is not None:
            self._debug_logger.debug(result)
        return result

    async def analyze(
        self,
        design: DesignData | Mapping[str, Any] | None,
        screenshots: Sequence[DesignScreenshot | Mapping[str, Any]] | None = None,
    ) -> CombinedAnalysis:
        """Analyze a design, with screenshots when vision is enabled.

        Both analyzers run concurrently; fusion starts once both have
        finished, failed or been skipped.

        Args:
            design: The design, as a model or as raw JSON-like data.
            screenshots: Rendered pages for the vision analyzer.

        Returns:
            The fused analysis. Per-request failures never raise.
        """
        design = DesignData.coerce(design)
        shots = coerce_screenshots(screenshots)

        (text_result, text_notes), (vision_result, vision_notes) = await asyncio.gather(
            self._run_text(self._text, design),
            self._run_vision(shots),
        )
        result = self.engine.fuse(
            text_result,
            vision_result,
            design=design,
            text_insights=text_notes,
            vision_insights=vision_notes,
        )
        return self._finish(result)

    async def analyze_cost_optimized(self, design: DesignData | Mapping[str, Any] | None) -> CombinedAnalysis:
        """Analyze a design with a single text-analyzer round trip.

        The response is cached under the ``batch_analysis`` key namespace when
        a cache is configured. Vision is never used.
        """
        design = DesignData.coerce(design)
        text_result, text_notes = await self._run_text(self._batch, design)
        result = self.engine.fuse(text_result, None, design=design, text_insights=text_notes)
        return self._finish(result)
