"""Tests for configuration system."""

from pathlib import Path

import pytest

from proc_compare.config import (
    Config,
    FilterConfig,
    MonitorConfig,
    OutputConfig,
    SortConfig,
    SystemConfig,
)
from proc_compare.errors import ConfigurationError


def test_filter_config_defaults():
    """FilterConfig disables every predicate by default."""
    config = FilterConfig()
    assert config.min_memory == 0
    assert config.max_memory is None
    assert config.min_cpu == 0
    assert config.command == ""
    assert config.owner == ""


def test_full_config_defaults():
    """Full Config object has correct nested defaults."""
    config = Config()
    assert config.sorting == SortConfig(field="pid", order="asc")
    assert config.monitor.interval == 0
    assert config.monitor.alerts is False
    assert config.output.format == "text"
    assert config.system.parallel is False
    assert config.system.max_workers == 8


def test_config_paths():
    """Config lives under ~/.config/proc-compare."""
    config = Config()
    assert config.config_path == Path.home() / ".config" / "proc-compare" / "config.toml"


def test_defaults_validate():
    """The default config is valid."""
    Config().validate()


@pytest.mark.parametrize(
    "section",
    [
        FilterConfig(min_memory=-1),
        FilterConfig(max_memory=-1),
        FilterConfig(min_memory=500, max_memory=100),
        FilterConfig(min_cpu=-5),
        SortConfig(field="rss"),
        SortConfig(order="random"),
        MonitorConfig(interval=-1),
        OutputConfig(format="xml"),
        SystemConfig(max_workers=0),
    ],
)
def test_invalid_sections_raise(section):
    """Each invalid setting raises ConfigurationError."""
    with pytest.raises(ConfigurationError):
        section.validate()


def test_configuration_error_is_value_error():
    """Callers catching ValueError still see config errors."""
    with pytest.raises(ValueError):
        SortConfig(field="rss").validate()


def test_config_save_and_load(tmp_path: Path):
    """Config can be saved and loaded back."""
    config_path = tmp_path / "config.toml"

    config = Config()
    config.filters.min_memory = 2048
    config.filters.max_memory = 8192
    config.filters.command = "python"
    config.filters.owner = "Alice"
    config.sorting.field = "mem"
    config.sorting.order = "desc"
    config.monitor.interval = 2.5
    config.monitor.alerts = True
    config.output.format = "json"
    config.output.summary = True
    config.system.parallel = True
    config.save(config_path)

    loaded = Config.load(config_path)

    assert loaded.filters == config.filters
    assert loaded.sorting == config.sorting
    assert loaded.monitor == config.monitor
    assert loaded.output == config.output
    assert loaded.system == config.system


def test_unbounded_max_memory_round_trips(tmp_path: Path):
    """None is written as 0 and read back as None."""
    config_path = tmp_path / "config.toml"
    Config().save(config_path)

    assert "max_memory = 0" in config_path.read_text()
    assert Config.load(config_path).filters.max_memory is None


def test_config_load_missing_file_uses_defaults(tmp_path: Path):
    """Loading a missing file returns defaults."""
    config = Config.load(tmp_path / "nonexistent.toml")
    assert config.filters.min_memory == 0
    assert config.output.format == "text"


def test_config_load_partial_file(tmp_path: Path):
    """Missing sections and keys fall back to defaults."""
    config_path = tmp_path / "config.toml"
    config_path.write_text('[filters]\nmin_cpu = 10\n\n[output]\nformat = "csv"\n')

    config = Config.load(config_path)

    assert config.filters.min_cpu == 10
    assert config.filters.min_memory == 0
    assert config.output.format == "csv"
    assert config.sorting.field == "pid"


def test_config_load_invalid_value(tmp_path: Path):
    """Invalid values in the file are rejected at load time."""
    config_path = tmp_path / "config.toml"
    config_path.write_text('[sorting]\nfield = "size"\n')

    with pytest.raises(ConfigurationError, match="size"):
        Config.load(config_path)


def test_config_load_malformed_toml(tmp_path: Path):
    """A file that is not TOML raises ConfigurationError."""
    config_path = tmp_path / "config.toml"
    config_path.write_text("[filters\nmin_cpu = = 1\n")

    with pytest.raises(ConfigurationError, match="Failed to parse"):
        Config.load(config_path)


@pytest.mark.parametrize(
    "text,message",
    [
        ('[filters]\nmin_memory = "abc"\n', "filters.min_memory must be int"),
        ('[monitor]\ninterval = "5"\n', "monitor.interval must be int or float"),
        ("[monitor]\nalerts = 1\n", "monitor.alerts must be bool"),
        ("[system]\nmax_workers = true\n", "system.max_workers must be int"),
        ("[output]\nformat = 3\n", "output.format must be str"),
        ("sorting = 5\n", r"\[sorting\] must be a table"),
    ],
)
def test_config_load_wrong_type(tmp_path: Path, text: str, message: str):
    """Wrongly typed values are configuration errors, not crashes."""
    config_path = tmp_path / "config.toml"
    config_path.write_text(text)

    with pytest.raises(ConfigurationError, match=message):
        Config.load(config_path)


def test_config_load_int_interval(tmp_path: Path):
    """An integer interval is accepted for a float field."""
    config_path = tmp_path / "config.toml"
    config_path.write_text("[monitor]\ninterval = 5\n")

    assert Config.load(config_path).monitor.interval == 5
