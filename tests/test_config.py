"""Tests for AnalysisConfig construction from code, environment and TOML."""

from pathlib import Path

import pytest

from designfusion.config import AnalysisConfig, ConfigurationError, parse_bool
from designfusion.merge import FieldTypePolicy


class TestDefaults:
    def test_default_values(self):
        config = AnalysisConfig()
        assert config.enable_vision is False
        assert config.infer_relationships is True
        assert config.add_timestamp_fields is True
        assert config.field_type_policy == FieldTypePolicy.PREFER_SPECIFIC
        assert config.cache_enabled is False
        assert config.cache_dir is None
        assert config.cache_max_age_hours == 24
        assert config.max_cache_size == 1000
        assert config.debug is False

    def test_frozen(self):
        config = AnalysisConfig()
        with pytest.raises(Exception):  # Pydantic ValidationError
            config.enable_vision = True

    def test_configuration_error_is_value_error(self):
        assert issubclass(ConfigurationError, ValueError)


class TestFromEnv:
    def test_empty_environment_gives_defaults(self):
        assert AnalysisConfig.from_env({}) == AnalysisConfig()

    def test_reads_prefixed_variables(self):
        config = AnalysisConfig.from_env(
            {
                "DESIGNFUSION_ENABLE_VISION": "true",
                "DESIGNFUSION_INFER_RELATIONSHIPS": "0",
                "DESIGNFUSION_ADD_TIMESTAMPS": "no",
                "DESIGNFUSION_FIELD_TYPE_POLICY": "prefer_vision",
                "DESIGNFUSION_CACHE_ENABLED": "yes",
                "DESIGNFUSION_CACHE_DIR": "/tmp/designfusion",
                "DESIGNFUSION_CACHE_MAX_AGE_HOURS": "6.5",
                "DESIGNFUSION_MAX_CACHE_SIZE": "50",
                "DESIGNFUSION_DEBUG": "on",
                "UNRELATED": "ignored",
            }
        )
        assert config.enable_vision is True
        assert config.infer_relationships is False
        assert config.add_timestamp_fields is False
        assert config.field_type_policy == FieldTypePolicy.PREFER_VISION
        assert config.cache_enabled is True
        assert config.cache_dir == Path("/tmp/designfusion")
        assert config.cache_max_age_hours == pytest.approx(6.5)
        assert config.max_cache_size == 50
        assert config.debug is True

    def test_reads_os_environ_by_default(self, monkeypatch):
        monkeypatch.setenv("DESIGNFUSION_ENABLE_VISION", "1")
        assert AnalysisConfig.from_env().enable_vision is True

    @pytest.mark.parametrize(
        "name, value",
        [
            ("DESIGNFUSION_ENABLE_VISION", "maybe"),
            ("DESIGNFUSION_FIELD_TYPE_POLICY", "prefer_loudest"),
            ("DESIGNFUSION_MAX_CACHE_SIZE", "0"),
            ("DESIGNFUSION_MAX_CACHE_SIZE", "lots"),
            ("DESIGNFUSION_CACHE_MAX_AGE_HOURS", "-1"),
        ],
    )
    def test_invalid_values(self, name, value):
        with pytest.raises(ConfigurationError):
            AnalysisConfig.from_env({name: value})


class TestFromToml:
    def test_missing_file_gives_defaults(self, tmp_path):
        assert AnalysisConfig.from_toml(tmp_path / "absent.toml") == AnalysisConfig()

    def test_reads_analysis_table(self, tmp_path):
        path = tmp_path / "designfusion.toml"
        path.write_text(
            "[analysis]\n"
            "enable_vision = true\n"
            'field_type_policy = "prefer_text"\n'
            "cache_enabled = true\n"
            'cache_dir = "cache"\n'
            "max_cache_size = 10\n"
        )
        config = AnalysisConfig.from_toml(path)
        assert config.enable_vision is True
        assert config.field_type_policy == FieldTypePolicy.PREFER_TEXT
        assert config.cache_dir == Path("cache")
        assert config.max_cache_size == 10

    def test_file_without_table(self, tmp_path):
        path = tmp_path / "other.toml"
        path.write_text('[tool]\nname = "x"\n')
        assert AnalysisConfig.from_toml(path) == AnalysisConfig()

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "broken.toml"
        path.write_text("[analysis\nenable_vision = ")
        with pytest.raises(ConfigurationError):
            AnalysisConfig.from_toml(path)

    def test_unknown_setting(self, tmp_path):
        path = tmp_path / "typo.toml"
        path.write_text("[analysis]\nenable_visoin = true\n")
        with pytest.raises(ConfigurationError, match="enable_visoin"):
            AnalysisConfig.from_toml(path)

    def test_invalid_value(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text("[analysis]\nmax_cache_size = -5\n")
        with pytest.raises(ConfigurationError):
            AnalysisConfig.from_toml(path)


class TestParseBool:
    @pytest.mark.parametrize("value", ["1", "true", "TRUE", " yes ", "on"])
    def test_true(self, value):
        assert parse_bool("X", value) is True

    @pytest.mark.parametrize("value", ["0", "false", "No", "off", ""])
    def test_false(self, value):
        assert parse_bool("X", value) is False

    def test_invalid(self):
        with pytest.raises(ConfigurationError, match="X must be a boolean"):
            parse_bool("X", "sometimes")
