"""Configuration package for the participation tracker."""

from participation.config.app_config import (
    AppConfig,
    DatabaseConfig,
    PickerConfig,
    RosterConfig,
    SummaryConfig,
    clear_config_cache,
    get_database_config,
    load_app_config,
)

__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "PickerConfig",
    "RosterConfig",
    "SummaryConfig",
    "clear_config_cache",
    "get_database_config",
    "load_app_config",
]
