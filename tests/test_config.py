"""Tests for YAML configuration and database path resolution."""

import pytest
import yaml

from wtsnap.config import (
    Config, ConfigError, ConfigManager, SnapshotConfig, StatsConfig, resolve_database_path,
)


def test_defaults_without_file(tmp_path):
    config = ConfigManager(tmp_path / "none.yaml").config
    assert config == Config()
    assert config.snapshot.sample_time == 60
    assert config.snapshot.exclude_blanks is False
    assert config.stats.classification_file == "~/.wtclass.sql"


def test_partial_file_merges_with_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump({
        "snapshot": {"sample_time": 120, "exclude_blanks": True, "bogus": 1},
        "stats": {"idle_threshold_seconds": 600},
    }))
    config = ConfigManager(path).config
    assert config.snapshot == SnapshotConfig(sample_time=120, exclude_blanks=True)
    assert config.stats.idle_threshold_seconds == 600
    assert config.stats.show_uncategorized is False


def test_invalid_yaml_falls_back_to_defaults(tmp_path, caplog):
    path = tmp_path / "config.yaml"
    path.write_text("snapshot: [unclosed")
    assert ConfigManager(path).config == Config()
    assert "Failed to load config" in caplog.text


def test_non_mapping_yaml_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n")
    assert ConfigManager(path).config == Config()


@pytest.mark.parametrize("body", [
    "snapshot: 5\n",
    "snapshot: [a, b]\n",
    "stats: oops\n",
])
def test_non_mapping_section_falls_back_to_defaults(tmp_path, caplog, body):
    path = tmp_path / "config.yaml"
    path.write_text(body)
    assert ConfigManager(path).config == Config()
    assert "expected a mapping" in caplog.text


def test_non_mapping_section_keeps_other_sections(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("snapshot: 5\nstats:\n  idle_threshold_seconds: 600\n")
    config = ConfigManager(path).config
    assert config.snapshot == SnapshotConfig()
    assert config.stats == StatsConfig(idle_threshold_seconds=600)


def test_create_default_file(tmp_path):
    path = tmp_path / "sub" / "config.yaml"
    manager = ConfigManager(path)
    assert manager.create_default_file() is True
    assert yaml.safe_load(path.read_text())["snapshot"]["sample_time"] == 60
    assert manager.create_default_file() is False


@pytest.mark.parametrize("sample_time", [0, -5, "60", 1.5, True])
def test_sample_time_must_be_positive_int(sample_time):
    with pytest.raises(ConfigError):
        SnapshotConfig(sample_time=sample_time).validate()


def test_explicit_database_path_is_expanded():
    assert resolve_database_path("~/x.db", environ={}).endswith("/x.db")
    assert not resolve_database_path("~/x.db", environ={}).startswith("~")


def test_default_database_path_uses_home():
    assert resolve_database_path(None, environ={"HOME": "/home/me"}) == "/home/me/.wtsnap.db"


def test_default_database_path_needs_home():
    with pytest.raises(ConfigError, match="HOME not set"):
        resolve_database_path(None, environ={})


@pytest.mark.parametrize("threshold", [0, -1, "180", 2.5, False])
def test_idle_threshold_must_be_positive_int(threshold):
    with pytest.raises(ConfigError, match="idle_threshold_seconds"):
        StatsConfig(idle_threshold_seconds=threshold).validate()


def test_default_stats_config_is_valid():
    StatsConfig().validate()
