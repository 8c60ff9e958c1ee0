"""Application configuration loader.

Loads configuration from the YAML file named by PARTICIPATION_CONFIG,
falling back to data/config/participation.yaml and then to built-in defaults.

Usage:
    from participation.config.app_config import load_app_config

    config = load_app_config()
    boundaries = config.summary.boundaries
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog
import yaml

from participation.core.exporter import DEFAULT_HEADERS
from participation.errors import ParseError
from participation.utils.validators import parse_boundary

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
CONFIG_FILE = Path("data/config/participation.yaml")

CONFIG_ENV = "PARTICIPATION_CONFIG"
DB_PATH_ENV = "PARTICIPATION_DB"
NAMESPACE_ENV = "PARTICIPATION_NAMESPACE"


@dataclass
class DatabaseConfig:
    """Where the store lives and which roster namespace to use."""

    path: Path = Path("db/participation.db")
    namespace: str = "real"


@dataclass
class SummaryConfig:
    """Grading periods and export column templates."""

    boundaries: tuple[datetime, datetime, datetime]
    headers: tuple[str, str, str]


@dataclass
class RosterConfig:
    """Roster file decoding options."""

    encoding: str = "utf-16-le"
    has_header: bool = True


@dataclass
class PickerConfig:
    """Picker options. A seed makes the draw order reproducible."""

    seed: int | None = None


@dataclass
class AppConfig:
    """Application-wide configuration."""

    summary: SummaryConfig
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    roster: RosterConfig = field(default_factory=RosterConfig)
    picker: PickerConfig = field(default_factory=PickerConfig)


# Module-level cache
_cached_config: AppConfig | None = None


def _get_defaults() -> dict[str, Any]:
    """Get default configuration values."""
    return {
        "database": {
            "path": "db/participation.db",
            "namespace": "real",
        },
        "summary": {
            "boundaries": ["2021-10-01", "2021-11-05", "2021-12-13"],
            "headers": list(DEFAULT_HEADERS),
        },
        "roster": {
            "encoding": "utf-16-le",
            "has_header": True,
        },
        "picker": {
            "seed": None,
        },
    }


def _parse_config(data: dict[str, Any]) -> AppConfig:
    """Parse configuration dictionary into AppConfig object.

    Raises:
        ParseError: If summary boundaries or headers are malformed
    """
    defaults = _get_defaults()

    db_data = data.get("database") or {}
    database = DatabaseConfig(
        path=Path(db_data.get("path", defaults["database"]["path"])),
        namespace=db_data.get("namespace", defaults["database"]["namespace"]),
    )

    summary_data = data.get("summary") or {}
    raw_boundaries = summary_data.get("boundaries", defaults["summary"]["boundaries"])
    raw_headers = summary_data.get("headers", defaults["summary"]["headers"])
    if len(raw_boundaries) != 3:
        raise ParseError(f"summary.boundaries needs 3 values, got {len(raw_boundaries)}")
    if len(raw_headers) != 3:
        raise ParseError(f"summary.headers needs 3 values, got {len(raw_headers)}")
    b1, b2, b3 = (parse_boundary(b) for b in raw_boundaries)
    if not (b1 <= b2 <= b3):
        raise ParseError("summary.boundaries must be in ascending order")
    headers = tuple(str(h) for h in raw_headers)
    for header in headers:
        # Only {max} may be substituted
        try:
            header.format(max=0)
        except (AttributeError, KeyError, IndexError, ValueError) as e:
            raise ParseError(f"Invalid summary header {header!r}: {e!r}") from e
    summary = SummaryConfig(boundaries=(b1, b2, b3), headers=headers)

    roster_data = data.get("roster") or {}
    roster = RosterConfig(
        encoding=roster_data.get("encoding", defaults["roster"]["encoding"]),
        has_header=roster_data.get("has_header", defaults["roster"]["has_header"]),
    )

    picker_data = data.get("picker") or {}
    picker = PickerConfig(seed=picker_data.get("seed"))

    return AppConfig(summary=summary, database=database, roster=roster, picker=picker)


def get_config_path() -> Path:
    """Config file location, honoring PARTICIPATION_CONFIG."""
    env_path = os.environ.get(CONFIG_ENV)
    return Path(env_path) if env_path else CONFIG_FILE


def load_app_config(force_reload: bool = False) -> AppConfig:
    """Load application config.

    Args:
        force_reload: If True, ignore cached config and reload from file.

    Returns:
        AppConfig object with all settings.

    Raises:
        ParseError: If the file is not valid YAML or has malformed values
    """
    global _cached_config

    if _cached_config is not None and not force_reload:
        return _cached_config

    config_path = get_config_path()
    if config_path.exists():
        logger.debug("loading_app_config", source=str(config_path))
        try:
            data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ParseError(f"Invalid config file {config_path}: {e}") from e
    else:
        logger.info("using_default_config")
        data = _get_defaults()

    _cached_config = _parse_config(data)
    return _cached_config


def get_database_config() -> DatabaseConfig:
    """Database settings with PARTICIPATION_DB / PARTICIPATION_NAMESPACE applied."""
    config = load_app_config().database
    return DatabaseConfig(
        path=Path(os.environ.get(DB_PATH_ENV, str(config.path))),
        namespace=os.environ.get(NAMESPACE_ENV, config.namespace),
    )


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing or when config is modified at runtime.
    """
    global _cached_config
    _cached_config = None
