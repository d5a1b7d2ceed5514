"""Unit tests for configuration loading and validation."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from featuregraph.config import (
    AnalysisConfig,
    ConfigError,
    CorrelationConfig,
    DatabaseConfig,
    FeatureGraphConfig,
    ScoringWeights,
    _deep_merge_dicts,
    _expand_env_vars,
    find_config_file,
    load_config,
    load_config_file,
    load_config_from_env,
    validate_config,
)


class TestConfigDataClasses:
    """Test configuration dataclasses."""

    def test_defaults(self):
        """Test default values match the documented constants."""
        config = FeatureGraphConfig()

        assert config.database.url == "sqlite:///featuregraph.db"
        assert config.correlation.min_threshold == 0.3
        assert config.correlation.text_weight == 0.6
        assert config.correlation.category_weight == 0.4
        assert config.graph.min_critical_path_length == 3
        assert config.graph.bottleneck_min_dependents == 3
        assert config.insights.insight_ttl_days is None
        assert config.analysis.time_budget_seconds == 300.0
        assert config.analysis.lock_timeout_seconds == 0.0
        assert config.logging.format == "human"

    def test_from_dict_partial(self):
        """Test that missing sections fall back to defaults."""
        config = FeatureGraphConfig.from_dict(
            {"correlation": {"min_threshold": 0.5}, "graph": {"bottleneck_min_dependents": 2}}
        )

        assert config.correlation.min_threshold == 0.5
        assert config.correlation.text_weight == 0.6
        assert config.graph.bottleneck_min_dependents == 2
        assert config.scoring == ScoringWeights()

    def test_from_dict_unknown_key(self):
        """Test that unknown keys in a section are rejected."""
        with pytest.raises(ConfigError, match="analysis"):
            FeatureGraphConfig.from_dict({"analysis": {"budget": 10}})

    def test_to_dict_round_trip(self):
        """Test that to_dict output is accepted by from_dict."""
        original = FeatureGraphConfig.from_dict({"analysis": {"max_workers": 4}})
        restored = FeatureGraphConfig.from_dict(original.to_dict())

        assert restored == original


class TestScoringWeights:
    """Test the versioned scoring weights object."""

    def test_default_weights_sum_to_one(self):
        """Test that the default weights validate."""
        weights = ScoringWeights()
        weights.validate()

        assert sum(weights.weights().values()) == pytest.approx(1.0)

    def test_snapshot_includes_version_and_method(self):
        """Test the snapshot stored on each score row."""
        snapshot = ScoringWeights(version="v2.0").snapshot()

        assert snapshot["version"] == "v2.0"
        assert snapshot["method"] == "weighted_sum"
        assert set(ScoringWeights.COMPONENTS) <= set(snapshot)

    def test_weights_not_summing_to_one(self):
        """Test that weights must sum to 1.0."""
        with pytest.raises(ConfigError, match="sum to 1.0"):
            ScoringWeights(dependency=0.5).validate()

    def test_negative_weight(self):
        """Test that a negative weight is rejected."""
        with pytest.raises(ConfigError, match="scoring.blocking"):
            ScoringWeights(blocking=-0.15, dependency=0.5).validate()

    def test_weights_are_immutable(self):
        """Test that a weights object cannot be mutated after creation."""
        weights = ScoringWeights()
        with pytest.raises(AttributeError):
            weights.dependency = 0.9


class TestValidateConfig:
    """Test validate_config."""

    def test_valid_default_config(self):
        """Test that defaults produce no warnings."""
        assert validate_config(FeatureGraphConfig()) == []

    def test_threshold_out_of_range(self):
        """Test correlation threshold bounds."""
        config = FeatureGraphConfig(correlation=CorrelationConfig(min_threshold=1.5))
        with pytest.raises(ConfigError, match="min_threshold"):
            validate_config(config)

    def test_correlation_weights_must_sum_to_one(self):
        """Test text/category weight balance."""
        config = FeatureGraphConfig(correlation=CorrelationConfig(text_weight=0.7))
        with pytest.raises(ConfigError, match="category_weight"):
            validate_config(config)

    def test_low_threshold_warns(self):
        """Test that a very low threshold is allowed with a warning."""
        config = FeatureGraphConfig(correlation=CorrelationConfig(min_threshold=0.05))
        warnings = validate_config(config)

        assert len(warnings) == 1
        assert "weak correlations" in warnings[0]

    def test_non_positive_budget(self):
        """Test that the time budget must be positive."""
        config = FeatureGraphConfig(analysis=AnalysisConfig(time_budget_seconds=0))
        with pytest.raises(ConfigError, match="time_budget_seconds"):
            validate_config(config)

    def test_negative_busy_timeout(self):
        """Test that the SQLite busy timeout cannot be negative."""
        config = FeatureGraphConfig(database=DatabaseConfig(busy_timeout_seconds=-1))
        with pytest.raises(ConfigError, match="busy_timeout_seconds"):
            validate_config(config)

    def test_invalid_log_format(self):
        """Test that only human and json log formats are accepted."""
        config = FeatureGraphConfig()
        config.logging.format = "xml"
        with pytest.raises(ConfigError, match="logging.format"):
            validate_config(config)


class TestEnvironment:
    """Test environment variable handling."""

    def test_expand_env_vars(self):
        """Test ${VAR} and $VAR expansion in nested data."""
        with patch.dict(os.environ, {"DB_PASSWORD": "secret"}):
            result = _expand_env_vars(
                {"database": {"url": "postgresql://fg:${DB_PASSWORD}@db/roadmap"}, "items": ["$DB_PASSWORD"]}
            )

        assert result["database"]["url"] == "postgresql://fg:secret@db/roadmap"
        assert result["items"] == ["secret"]

    def test_unknown_var_is_kept(self):
        """Test that unknown variables are left as written."""
        with patch.dict(os.environ, {}, clear=True):
            assert _expand_env_vars("${NOT_SET_ANYWHERE}") == "${NOT_SET_ANYWHERE}"

    def test_load_config_from_env(self):
        """Test environment overrides."""
        env = {
            "FEATUREGRAPH_DATABASE_URL": "sqlite://",
            "FEATUREGRAPH_CORRELATION_MIN_THRESHOLD": "0.4",
            "FEATUREGRAPH_ANALYSIS_MAX_WORKERS": "3",
            "FEATUREGRAPH_DATABASE_BUSY_TIMEOUT_SECONDS": "5",
            "FEATUREGRAPH_LOG_LEVEL": "DEBUG",
        }
        with patch.dict(os.environ, env, clear=True):
            data = load_config_from_env()

        assert data["database"]["url"] == "sqlite://"
        assert data["correlation"]["min_threshold"] == 0.4
        assert data["analysis"]["max_workers"] == 3
        assert data["database"]["busy_timeout_seconds"] == 5.0
        assert data["logging"]["level"] == "DEBUG"

    def test_invalid_numeric_env_is_ignored(self):
        """Test that malformed numbers do not abort loading."""
        with patch.dict(os.environ, {"FEATUREGRAPH_ANALYSIS_MAX_WORKERS": "many"}, clear=True):
            assert load_config_from_env() == {}

    def test_deep_merge(self):
        """Test that nested sections merge key by key."""
        merged = _deep_merge_dicts(
            {"graph": {"min_critical_path_length": 4, "bottleneck_min_dependents": 2}},
            {"graph": {"bottleneck_min_dependents": 5}},
        )

        assert merged == {"graph": {"min_critical_path_length": 4, "bottleneck_min_dependents": 5}}


class TestConfigFiles:
    """Test config file discovery and parsing."""

    def test_load_yaml_rc(self, tmp_path: Path):
        """Test loading a YAML .featuregraphrc."""
        rc = tmp_path / ".featuregraphrc"
        rc.write_text("correlation:\n  min_threshold: 0.45\nlogging:\n  level: WARNING\n")

        config = load_config(config_file=rc, use_env=False)

        assert config.correlation.min_threshold == 0.45
        assert config.logging.level == "WARNING"

    def test_load_toml(self, tmp_path: Path):
        """Test loading featuregraph.toml."""
        path = tmp_path / "featuregraph.toml"
        path.write_text('[database]\nurl = "sqlite://"\n\n[graph]\nmin_critical_path_length = 4\n')

        data = load_config_file(path)

        assert data == {"database": {"url": "sqlite://"}, "graph": {"min_critical_path_length": 4}}

    def test_malformed_yaml(self, tmp_path: Path):
        """Test that parse errors surface as ConfigError."""
        rc = tmp_path / ".featuregraphrc"
        rc.write_text("correlation: [unclosed\n")

        with pytest.raises(ConfigError, match="YAML"):
            load_config_file(rc)

    def test_missing_file(self, tmp_path: Path):
        """Test that a missing file raises ConfigError."""
        with pytest.raises(ConfigError, match="not found"):
            load_config_file(tmp_path / "nope.toml")

    def test_unsupported_extension(self, tmp_path: Path):
        """Test that unknown file types are rejected."""
        path = tmp_path / "featuregraph.ini"
        path.write_text("[database]\n")

        with pytest.raises(ConfigError, match="Unsupported"):
            load_config_file(path)

    def test_find_config_in_parent(self, tmp_path: Path):
        """Test hierarchical search from a nested directory."""
        (tmp_path / "featuregraph.toml").write_text("")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)

        assert find_config_file(nested) == (tmp_path / "featuregraph.toml").resolve()

    def test_env_overrides_file(self, tmp_path: Path):
        """Test that environment variables win over the config file."""
        rc = tmp_path / ".featuregraphrc"
        rc.write_text("analysis:\n  time_budget_seconds: 60\n")

        with patch.dict(os.environ, {"FEATUREGRAPH_ANALYSIS_TIME_BUDGET_SECONDS": "90"}, clear=True):
            config = load_config(config_file=rc)

        assert config.analysis.time_budget_seconds == 90.0
