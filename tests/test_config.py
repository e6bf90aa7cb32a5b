"""
Tests for run configuration loading.
"""

from pathlib import Path

import pytest

from querylearn.config import load_config
from querylearn.errors import ConfigError


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults(self):
        """Test no file and no overrides gives the defaults."""
        config = load_config()

        assert config.validate_queries
        assert config.sample_size == 10
        assert config.output_dir == Path("data") / "self-learning"

    def test_yaml_file(self, tmp_path):
        """Test YAML keys overlay the defaults."""
        path = tmp_path / "learn.yaml"
        path.write_text(
            "output_dir: out\n"
            "max_time_ms: 2500\n"
            "collections: [players, events]\n"
            "large_collections: [events]\n"
        )

        config = load_config(path)

        assert config.output_dir == Path("out")
        assert config.max_time_ms == 2500
        assert config.collections == ["players", "events"]
        assert config.large_collections == ["events"]

    def test_overrides_win_and_none_ignored(self, tmp_path):
        """Test keyword overrides beat the file; None leaves the file value."""
        path = tmp_path / "learn.yaml"
        path.write_text("sample_size: 3\nmax_query_retries: 5\n")

        config = load_config(path, sample_size=7, max_query_retries=None)

        assert config.sample_size == 7
        assert config.max_query_retries == 5

    def test_unknown_keys(self, tmp_path):
        """Test unknown keys are rejected by name."""
        path = tmp_path / "learn.yaml"
        path.write_text("sample_size: 3\nbogus: 1\n")

        with pytest.raises(ConfigError, match="bogus"):
            load_config(path)

    def test_non_mapping(self, tmp_path):
        """Test a YAML list is rejected."""
        path = tmp_path / "learn.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigError):
            load_config(path)

    def test_missing_file(self, tmp_path):
        """Test an unreadable file raises ConfigError."""
        with pytest.raises(ConfigError):
            load_config(tmp_path / "missing.yaml")

    def test_empty_file(self, tmp_path):
        """Test an empty file means defaults."""
        path = tmp_path / "learn.yaml"
        path.write_text("")

        assert load_config(path).max_time_ms == 10000
