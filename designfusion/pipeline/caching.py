"""Caching of analyzer responses.

Text and vision analyzers are usually model calls: slow, billed per request,
and deterministic enough for a given design that repeating them is waste.
This module caches their raw responses keyed by a content hash of the input:

- **Cost reduction**: an unchanged design is never sent to a model twice
- **Latency**: cached responses return immediately
- **Expiry**: responses older than ``max_age_hours`` are treated as misses

Key abstractions:
    - AnalysisCacheInterface: cache of analysis-key -> raw response mappings
    - InMemoryAnalysisCache: in-memory LRU cache
    - FileBasedAnalysisCache: one JSON file per key in a cache directory
    - CachedTextAnalyzer / CachedVisionAnalyzer: transparent analyzer wrappers

Typical usage:
    ```python
    cache = FileBasedAnalysisCache(AnalysisCacheConfig(cache_dir=Path(".cache")))
    analyzer = CachedTextAnalyzer(base_analyzer=llm_analyzer, cache=cache)

    first = await analyzer.analyze(design)   # model call
    second = await analyzer.analyze(design)  # served from cache
    ```

Cache failures never fail an analysis: unreadable files are misses and
unwritable directories are logged and skipped.
"""

import hashlib
import json
import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from designfusion.design import DesignData, DesignScreenshot
from designfusion.pipeline.interfaces import TextAnalyzerInterface, VisionAnalyzerInterface

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600

TEXT_ANALYSIS = "text_analysis"
VISION_ANALYSIS = "vision_analysis"
BATCH_ANALYSIS = "batch_analysis"


class AnalysisCacheConfig(BaseModel):
    """Configuration for analysis response caching.

    Attributes:
        max_cache_size: Maximum number of responses held in memory (LRU eviction)
        cache_dir: Directory for persisted responses (file-based caches only)
        max_age_hours: Responses older than this are ignored and dropped
    """

    model_config = {"frozen": True}

    max_cache_size: int = Field(1000, gt=0, description="Maximum number of responses in memory")
    cache_dir: Path | None = Field(None, description="Directory for persisted responses")
    max_age_hours: float = Field(24, gt=0, description="Maximum age of a cached response in hours")


def analysis_cache_key(subject: DesignData | Sequence[DesignScreenshot], analysis_type: str) -> str:
    """Build a cache key from a content hash of the analyzed input.

    Args:
        subject: A design, or the screenshots handed to the vision analyzer.
        analysis_type: Distinguishes different analyses of the same input,
            e.g. ``"text_analysis"`` or ``"batch_analysis"``.

    Returns:
        ``"<analysis_type>_<sha256 hex digest>"``.
    """
    if isinstance(subject, DesignData):
        digest = subject.content_hash()
    else:
        payload = json.dumps(
            [s.model_dump(mode="json") for s in subject],
            sort_keys=True,
            separators=(",", ":"),
        )
        digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return f"{analysis_type}_{digest}"


class AnalysisCacheInterface(ABC):
    """Abstract interface for caching raw analyzer responses.

    Keys come from `analysis_cache_key`; values are JSON-serializable
    mappings exactly as the analyzer returned them.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[dict[str, Any]]:
        """Return the cached response for `key`, or None on a miss or expired entry."""

    @abstractmethod
    async def put(self, key: str, value: Mapping[str, Any]) -> None:
        """Store a response under `key`."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove every cached response."""

    @abstractmethod
    def get_stats(self) -> dict[str, int]:
        """Get cache statistics.

        Returns:
            Dictionary with "hits", "misses", "size", "evictions" and "expired".
        """


class InMemoryAnalysisCache(AnalysisCacheInterface):
    """In-memory LRU cache of analyzer responses.

    Uses an OrderedDict for O(1) lookups and recency updates. Entries remember
    when they were stored and expire after ``max_age_hours``.
    """

    def __init__(self, config: AnalysisCacheConfig | None = None):
        self.config = config or AnalysisCacheConfig()
        self._cache: OrderedDict[str, tuple[float, dict[str, Any]]] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expired = 0

    def _is_fresh(self, stored_at: float) -> bool:
        return time.time() - stored_at <= self.config.max_age_hours * SECONDS_PER_HOUR

    def _remember(self, key: str, stored_at: float, value: dict[str, Any]) -> None:
        if key in self._cache:
            self._cache.move_to_end(key)
        self._cache[key] = (stored_at, value)
        while len(self._cache) > self.config.max_cache_size:
            self._cache.popitem(last=False)
            self._evictions += 1

    async def get(self, key: str) -> Optional[dict[str, Any]]:
        entry = self._cache.get(key)
        if entry is not None:
            stored_at, value = entry
            if self._is_fresh(stored_at):
                self._hits += 1
                self._cache.move_to_end(key)
                return value
            del self._cache[key]
            self._expired += 1
        self._misses += 1
        return None

    async def put(self, key: str, value: Mapping[str, Any]) -> None:
        self._remember(key, time.time(), dict(value))

    async def clear(self) -> None:
        self._cache.clear()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expired = 0

    def get_stats(self) -> dict[str, int]:
        return {
            "hits": self._hits,
            "misses": self._misses,
            "size": len(self._cache),
            "evictions": self._evictions,
            "expired": self._expired,
        }


class FileBasedAnalysisCache(InMemoryAnalysisCache):
    """Persistent cache storing one JSON file per key, fronted by the LRU cache.

    Each file holds::

        {"stored_at": 1760000000.0, "value": {...analyzer response...}}

    Writes are atomic (write to a temp file, then rename). A miss in memory
    falls through to disk; a file older than ``max_age_hours`` is deleted.

    Raises:
        ValueError: If ``config.cache_dir`` is None.
    """

    def __init__(self, config: AnalysisCacheConfig):
        if config.cache_dir is None:
            raise ValueError("cache_dir must be specified for FileBasedAnalysisCache")
        super().__init__(config)
        self.cache_dir: Path = config.cache_dir
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    def _read(self, key: str) -> Optional[tuple[float, dict[str, Any]]]:
        path = self._path(key)
        if not path.is_file():
            return None
        try:
            with open(path, "r") as f:
                data = json.load(f)
            return float(data["stored_at"]), dict(data["value"])
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable cache file %s: %s", path, e)
            return None

    async def get(self, key: str) -> Optional[dict[str, Any]]:
        value = await super().get(key)
        if value is not None:
            return value

        entry = self._read(key)
        if entry is None:
            return None
        stored_at, value = entry
        if not self._is_fresh(stored_at):
            self._expired += 1
            self._path(key).unlink(missing_ok=True)
            return None

        # The in-memory lookup above already counted a miss.
        self._misses -= 1
        self._hits += 1
        self._remember(key, stored_at, value)
        return value

    async def put(self, key: str, value: Mapping[str, Any]) -> None:
        stored_at = time.time()
        self._remember(key, stored_at, dict(value))

        path = self._path(key)
        temp_file = path.with_suffix(".tmp")
        try:
            with open(temp_file, "w") as f:
                json.dump({"stored_at": stored_at, "value": dict(value)}, f, indent=2)
            temp_file.replace(path)
        except (OSError, TypeError) as e:
            logger.warning("Could not persist cache entry %s: %s", key, e)

    async def clear(self) -> None:
        await super().clear()
        for path in self.cache_dir.glob("*.json"):
            path.unlink(missing_ok=True)

    def get_stats(self) -> dict[str, int]:
        stats = super().get_stats()
        stats["files"] = sum(1 for _ in self.cache_dir.glob("*.json"))
        return stats


class CachedTextAnalyzer(TextAnalyzerInterface):
    """Wraps a text analyzer with transparent response caching.

    Args:
        base_analyzer: The analyzer to call on a cache miss.
        cache: Where responses are stored.
        analysis_type: Key namespace; the cost-optimized batch path uses
            ``"batch_analysis"`` so its responses never mix with regular ones.
    """

    def __init__(
        self,
        base_analyzer: TextAnalyzerInterface,
        cache: AnalysisCacheInterface,
        analysis_type: str = TEXT_ANALYSIS,
    ):
        self.base_analyzer = base_analyzer
        self.cache = cache
        self.analysis_type = analysis_type

    async def analyze(self, design: DesignData) -> Mapping[str, Any]:
        key = analysis_cache_key(design, self.analysis_type)
        cached = await self.cache.get(key)
        if cached is not None:
            logger.debug("Using cached %s for %s", self.analysis_type, key)
            return cached

        response = await self.base_analyzer.analyze(design)
        if isinstance(response, Mapping):
            await self.cache.put(key, response)
        return response


class CachedVisionAnalyzer(VisionAnalyzerInterface):
    """Wraps a vision analyzer with transparent response caching."""

    def __init__(
        self,
        base_analyzer: VisionAnalyzerInterface,
        cache: AnalysisCacheInterface,
        analysis_type: str = VISION_ANALYSIS,
    ):
        self.base_analyzer = base_analyzer
        self.cache = cache
        self.analysis_type = analysis_type

    async def analyze_screenshots(self, screenshots: Sequence[DesignScreenshot]) -> Mapping[str, Any]:
        key = analysis_cache_key(screenshots, self.analysis_type)
        cached = await self.cache.get(key)
        if cached is not None:
            logger.debug("Using cached %s for %s", self.analysis_type, key)
            return cached

        response = await self.base_analyzer.analyze_screenshots(screenshots)
        if isinstance(response, Mapping):
            await self.cache.put(key, response)
        return response
