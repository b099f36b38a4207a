"""Analysis configuration.

`AnalysisConfig` can be built directly, from ``DESIGNFUSION_*`` environment
variables, or from the ``[analysis]`` table of a TOML file, e.g.::

    [analysis]
    enable_vision = true
    field_type_policy = "prefer_text"
    cache_enabled = true
    cache_dir = ".designfusion-cache"

Invalid values raise `ConfigurationError` rather than falling back silently.
"""

import os
import tomllib
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, Field, ValidationError

from designfusion.merge import FieldTypePolicy

ENV_PREFIX = "DESIGNFUSION_"

# Environment variable suffix -> config field.
ENV_FIELDS: dict[str, str] = {
    "ENABLE_VISION": "enable_vision",
    "INFER_RELATIONSHIPS": "infer_relationships",
    "ADD_TIMESTAMPS": "add_timestamp_fields",
    "FIELD_TYPE_POLICY": "field_type_policy",
    "CACHE_ENABLED": "cache_enabled",
    "CACHE_DIR": "cache_dir",
    "CACHE_MAX_AGE_HOURS": "cache_max_age_hours",
    "MAX_CACHE_SIZE": "max_cache_size",
    "DEBUG": "debug",
}

_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})
_FALSE_STRINGS = frozenset({"0", "false", "no", "off", ""})


class ConfigurationError(ValueError):
    """Raised for invalid configuration or an unusable combination of collaborators."""


def parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_STRINGS:
        return True
    if lowered in _FALSE_STRINGS:
        return False
    raise ConfigurationError(f"{name} must be a boolean (true/false), got {value!r}")


class AnalysisConfig(BaseModel):
    """Settings for one analysis pipeline.

    Attributes:
        enable_vision: Run the vision analyzer when screenshots are supplied.
        infer_relationships: Add rule-based relationship proposals to fused results.
        add_timestamp_fields: Give every entity ``created_at``/``updated_at`` columns.
        field_type_policy: How conflicting field types are resolved during fusion.
        cache_enabled: Cache analyzer responses on disk under `cache_dir`.
        cache_dir: Directory for cached analyzer responses.
        cache_max_age_hours: Cached responses older than this are ignored.
        max_cache_size: Entries kept in memory before LRU eviction.
        debug: Dump fused results at debug level.
    """

    model_config = {"frozen": True}

    enable_vision: bool = Field(False, description="Run the vision analyzer when screenshots are supplied")
    infer_relationships: bool = Field(True, description="Add rule-based relationship proposals")
    add_timestamp_fields: bool = Field(True, description="Append created_at/updated_at columns")
    field_type_policy: FieldTypePolicy = Field(
        FieldTypePolicy.PREFER_SPECIFIC, description="Resolution of conflicting field types"
    )
    cache_enabled: bool = Field(False, description="Cache analyzer responses on disk")
    cache_dir: Path | None = Field(None, description="Directory for cached analyzer responses")
    cache_max_age_hours: float = Field(24, gt=0, description="Maximum age of a cached response")
    max_cache_size: int = Field(1000, gt=0, description="Maximum number of in-memory cache entries")
    debug: bool = Field(False, description="Dump fused results at debug level")

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "AnalysisConfig":
        """Validate a plain mapping, converting pydantic errors to `ConfigurationError`."""
        unknown = set(values) - set(cls.model_fields)
        if unknown:
            raise ConfigurationError(f"Unknown analysis settings: {', '.join(sorted(unknown))}")
        try:
            return cls.model_validate(dict(values))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid analysis configuration: {e}") from e

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AnalysisConfig":
        """Build a config from ``DESIGNFUSION_*`` variables; unset ones keep their defaults.

        Args:
            environ: Variables to read. Defaults to `os.environ`.

        Raises:
            ConfigurationError: If a variable cannot be parsed or fails validation.
        """
        environ = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for suffix, field_name in ENV_FIELDS.items():
            name = ENV_PREFIX + suffix
            if name not in environ:
                continue
            raw = environ[name]
            if cls.model_fields[field_name].annotation is bool:
                values[field_name] = parse_bool(name, raw)
            elif field_name == "cache_dir":
                values[field_name] = Path(raw) if raw.strip() else None
            else:
                values[field_name] = raw.strip()
        return cls.from_mapping(values)

    @classmethod
    def from_toml(cls, path: str | Path) -> "AnalysisConfig":
        """Build a config from the ``[analysis]`` table of a TOML file.

        A missing file, or a file without an ``[analysis]`` table, gives the defaults.

        Raises:
            ConfigurationError: If the file is not valid TOML or a value is invalid.
        """
        path = Path(path)
        if not path.is_file():
            return cls()
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Could not parse {path}: {e}") from e
        section = data.get("analysis", {})
        if not isinstance(section, dict):
            raise ConfigurationError(f"[analysis] in {path} must be a table")
        return cls.from_mapping(section)
