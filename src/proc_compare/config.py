"""Configuration system for proc-compare."""

from collections.abc import Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import get_args

import tomlkit

from proc_compare.errors import ConfigurationError

SORT_FIELDS = ("pid", "cmd", "mem", "cpu", "state", "nice", "start", "user")
SORT_ORDERS = ("asc", "desc")
OUTPUT_FORMATS = ("text", "json", "csv", "html")


@dataclass
class FilterConfig:
    """Filter predicates applied to every scanned process.

    max_memory of None means unbounded. In TOML it is written as 0.
    """

    min_memory: int = 0  # kB
    max_memory: int | None = None  # kB
    min_cpu: int = 0  # ticks
    command: str = ""  # case-sensitive substring, empty matches all
    owner: str = ""  # uid or username (case-insensitive), empty matches all

    def validate(self) -> None:
        """Raise ConfigurationError on invalid bounds."""
        if self.min_memory < 0:
            raise ConfigurationError(f"min_memory must be >= 0, got {self.min_memory}")
        if self.max_memory is not None:
            if self.max_memory < 0:
                raise ConfigurationError(f"max_memory must be >= 0, got {self.max_memory}")
            if self.max_memory < self.min_memory:
                raise ConfigurationError(
                    f"max_memory ({self.max_memory}) is below min_memory ({self.min_memory})"
                )
        if self.min_cpu < 0:
            raise ConfigurationError(f"min_cpu must be >= 0, got {self.min_cpu}")


@dataclass
class SortConfig:
    """Ordering of the match set before pairing and display."""

    field: str = "pid"
    order: str = "asc"

    def validate(self) -> None:
        """Raise ConfigurationError on unknown field or order."""
        if self.field not in SORT_FIELDS:
            raise ConfigurationError(
                f"Invalid sort field: {self.field!r}. Must be one of {list(SORT_FIELDS)}"
            )
        if self.order not in SORT_ORDERS:
            raise ConfigurationError(
                f"Invalid sort order: {self.order!r}. Must be one of {list(SORT_ORDERS)}"
            )


@dataclass
class MonitorConfig:
    """Refresh loop settings."""

    interval: float = 0  # Seconds between scans, 0 = single scan
    alerts: bool = False  # Desktop notification when the best pair changes

    def validate(self) -> None:
        """Raise ConfigurationError on a negative interval."""
        if self.interval < 0:
            raise ConfigurationError(f"interval must be >= 0, got {self.interval}")


@dataclass
class OutputConfig:
    """Report rendering settings."""

    format: str = "text"
    list_all: bool = False  # Include every matching process
    summary: bool = False  # Include count and averages

    def validate(self) -> None:
        """Raise ConfigurationError on an unknown format."""
        if self.format not in OUTPUT_FORMATS:
            raise ConfigurationError(
                f"Invalid output format: {self.format!r}. Must be one of {list(OUTPUT_FORMATS)}"
            )


@dataclass
class SystemConfig:
    """Scanner and logging settings."""

    parallel: bool = False  # Parse /proc entries on a thread pool
    max_workers: int = 8
    # Log file rotation
    log_max_bytes: int = 5 * 1024 * 1024  # 5MB
    log_backup_count: int = 3

    def validate(self) -> None:
        """Raise ConfigurationError on a non-positive worker count."""
        if self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be >= 1, got {self.max_workers}")


def _dataclass_to_table(obj: object) -> tomlkit.items.Table:
    """Convert a dataclass instance to a tomlkit Table recursively.

    TOML has no null, so None values are written as 0.
    """
    table = tomlkit.table()
    for f in fields(obj):  # type: ignore[arg-type]
        value = getattr(obj, f.name)
        if is_dataclass(value) and not isinstance(value, type):
            table.add(f.name, _dataclass_to_table(value))
        elif value is None:
            table.add(f.name, 0)
        else:
            table.add(f.name, value)
    return table


@dataclass
class Config:
    """Main configuration container."""

    filters: FilterConfig = field(default_factory=FilterConfig)
    sorting: SortConfig = field(default_factory=SortConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    system: SystemConfig = field(default_factory=SystemConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "proc-compare"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    def validate(self) -> None:
        """Check every section. Raises ConfigurationError."""
        self.filters.validate()
        self.sorting.validate()
        self.monitor.validate()
        self.output.validate()
        self.system.validate()

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)

        doc = tomlkit.document()
        for name in ("filters", "sorting", "monitor", "output", "system"):
            doc.add(name, _dataclass_to_table(getattr(self, name)))
            doc.add(tomlkit.nl())

        path.write_text(tomlkit.dumps(doc))

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        Raises:
            ConfigurationError: If the file cannot be parsed or holds invalid values.
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f)
        except tomlkit.exceptions.TOMLKitError as e:
            raise ConfigurationError(f"Failed to parse config file {path}: {e}") from e

        config = cls(
            filters=_load_filter_config(data.get("filters", {})),
            sorting=_load_section(SortConfig, data.get("sorting", {}), "sorting"),
            monitor=_load_section(MonitorConfig, data.get("monitor", {}), "monitor"),
            output=_load_section(OutputConfig, data.get("output", {}), "output"),
            system=_load_section(SystemConfig, data.get("system", {}), "system"),
        )
        config.validate()
        return config


def _expected_types(annotation) -> tuple[type, ...]:
    """Python types accepted for a field annotation. Floats also accept ints."""
    accepted: list[type] = []
    for t in get_args(annotation) or (annotation,):
        if t is type(None):
            continue
        accepted.extend((int, float) if t is float else (t,))
    return tuple(accepted)


def _load_section(section_cls: type, data: Mapping, name: str):
    """Build a flat config section, using dataclass defaults for missing keys.

    Raises:
        ConfigurationError: If the section is not a table or a value has the wrong type.
    """
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"[{name}] must be a table")

    defaults = section_cls()
    values = {}
    for f in fields(section_cls):
        if f.name not in data:
            values[f.name] = getattr(defaults, f.name)
            continue
        # tomlkit returns its own item types; unwrap to plain Python values
        value = data[f.name]
        value = value.unwrap() if hasattr(value, "unwrap") else value
        accepted = _expected_types(f.type)
        if (isinstance(value, bool) and bool not in accepted) or not isinstance(value, accepted):
            expected = " or ".join(t.__name__ for t in accepted)
            raise ConfigurationError(f"{name}.{f.name} must be {expected}, got {value!r}")
        values[f.name] = value
    return section_cls(**values)


def _load_filter_config(data: Mapping) -> FilterConfig:
    """Load filters, mapping max_memory = 0 back to unbounded."""
    filters = _load_section(FilterConfig, data, "filters")
    if not filters.max_memory:
        filters.max_memory = None
    return filters
