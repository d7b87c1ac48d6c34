"""Configuration package for the reading program."""

from luxlibris.config.app_config import (
    AppConfig,
    ProgramSettings,
    StorageConfig,
    TierDefaults,
    clear_config_cache,
    load_app_config,
)

__all__ = [
    "AppConfig",
    "ProgramSettings",
    "StorageConfig",
    "TierDefaults",
    "clear_config_cache",
    "load_app_config",
]
