"""Configuration for wtsnap and wtstats.

Settings live in an optional YAML file and are loaded into dataclasses with
defaults for every field, so a missing file, a missing section or a missing
key all fall back to the built-in values. Command-line flags override what
the file says.

Configuration Sections:
- snapshot: What ``wtsnap`` captures and where it writes
- stats: How ``wtstats`` classifies and filters snapshots

Example:
    >>> from wtsnap.config import ConfigManager
    >>> config_mgr = ConfigManager()
    >>> config_mgr.config.snapshot.sample_time
    60
    >>> resolve_database_path(config_mgr.config.snapshot.database)
    '/home/me/.wtsnap.db'
"""

import dataclasses
import logging
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Mapping, Optional

import yaml

from . import CaptureError

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_NAME = ".wtsnap.db"


class ConfigError(CaptureError):
    """Invalid or unusable configuration."""
    pass


@dataclass
class SnapshotConfig:
    """Options for one capture run.

    Attributes:
        database: SQLite file to write to (default: $HOME/.wtsnap.db)
        display: X display name (default: None, i.e. $DISPLAY)
        sample_time: Seconds each snapshot stands for; set this to the
            interval the scheduler runs wtsnap at (default: 60)
        exclude_blanks: Skip windows without name, class and title (default: False)
    """
    database: Optional[str] = None
    display: Optional[str] = None
    sample_time: int = 60
    exclude_blanks: bool = False

    def validate(self) -> None:
        _check_positive_int("sample_time", self.sample_time)


@dataclass
class StatsConfig:
    """Options for the wtstats report.

    Attributes:
        classification_file: File holding the body of an SQL CASE expression
        idle_threshold_seconds: Ignore snapshots idle for this long or longer
        show_uncategorized: Value of ``show_uncategorized`` inside the rules
    """
    classification_file: str = "~/.wtclass.sql"
    idle_threshold_seconds: int = 180
    show_uncategorized: bool = False

    def validate(self) -> None:
        _check_positive_int("idle_threshold_seconds", self.idle_threshold_seconds)


def _check_positive_int(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"{name} must be a positive integer, got {value!r}")


@dataclass
class Config:
    """Top-level configuration container."""
    snapshot: SnapshotConfig = field(default_factory=SnapshotConfig)
    stats: StatsConfig = field(default_factory=StatsConfig)


def resolve_database_path(database: Optional[str] = None,
                          environ: Optional[Mapping[str, str]] = None) -> str:
    """Return the database path to use.

    Args:
        database: Explicit path (``~`` is expanded), or None for the default
        environ: Environment to read HOME from (default: os.environ)

    Raises:
        ConfigError: If no path was given and HOME isn't set
    """
    if database:
        path = str(Path(database).expanduser())
    else:
        logger.debug("Constructing default db name")
        env = os.environ if environ is None else environ
        home = env.get("HOME")
        if not home:
            raise ConfigError("HOME not set, use -f to specify a database file")
        path = str(Path(home) / DEFAULT_DATABASE_NAME)
    logger.debug(f"Using db '{path}'")
    return path


class ConfigManager:
    """Loads and saves the YAML configuration file.

    Attributes:
        DEFAULT_PATH: Default configuration file location
        path: Actual configuration file path being used
        config: Current configuration object
    """

    DEFAULT_PATH = Path("~/.config/wtsnap/config.yaml").expanduser()

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path).expanduser() if path else self.DEFAULT_PATH
        self.config = self._load()

    def _load(self) -> Config:
        """Load configuration from the YAML file, or defaults.

        Invalid YAML is logged and replaced by the defaults rather than
        failing the run.
        """
        if not self.path.exists():
            logger.debug(f"No config file at {self.path}, using defaults")
            return Config()
        try:
            with open(self.path) as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise yaml.YAMLError(f"expected a mapping, got {type(data).__name__}")
            logger.debug(f"Loaded configuration from {self.path}")
            return self._dict_to_config(data)
        except (yaml.YAMLError, OSError) as e:
            logger.warning(f"Failed to load config from {self.path}: {e}")
            return Config()

    def _dict_to_config(self, data: dict) -> Config:
        """Build a Config from a dict, ignoring unknown keys."""
        def known_fields(section: str, dataclass_type) -> dict:
            section_data = data.get(section) or {}
            if not isinstance(section_data, dict):
                logger.warning(f"Ignoring config section {section}: expected a mapping, "
                               f"got {type(section_data).__name__}")
                return {}
            known = {f.name for f in dataclasses.fields(dataclass_type)}
            unknown = set(section_data) - known
            if unknown:
                logger.debug(f"Ignoring unknown config fields in {section}: {unknown}")
            return {k: v for k, v in section_data.items() if k in known}

        return Config(
            snapshot=SnapshotConfig(**known_fields('snapshot', SnapshotConfig)),
            stats=StatsConfig(**known_fields('stats', StatsConfig)),
        )

    def save(self) -> None:
        """Write the current configuration to the YAML file.

        Raises:
            OSError: If the file can't be written
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            yaml.dump(asdict(self.config), f, default_flow_style=False,
                      sort_keys=False, indent=2)
        logger.info(f"Saved configuration to {self.path}")

    def create_default_file(self) -> bool:
        """Write the defaults unless a config file already exists.

        Returns:
            True if a file was created
        """
        if self.path.exists():
            logger.warning(f"Configuration file already exists at {self.path}")
            return False
        self.config = Config()
        self.save()
        return True
