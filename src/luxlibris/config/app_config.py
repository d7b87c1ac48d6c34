"""Application configuration loader.

Loads centralized configuration from data/config/program_config_v1.yaml.
The LUXLIBRIS_CONFIG environment variable points at an alternative file.

Usage:
    from luxlibris.config.app_config import load_app_config

    config = load_app_config()
    ceiling = config.program.default_ceiling
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
CONFIG_FILE = Path("data/config/program_config_v1.yaml")
CONFIG_ENV_VAR = "LUXLIBRIS_CONFIG"


@dataclass
class ProgramSettings:
    """Limits and timings of the reading program."""

    default_ceiling: int = 20
    note_max_length: int = 500
    revision_cooldown_hours: int = 24
    quiz_cooldown_hours: int = 24
    # historical completions: grades from first_grade up, at most this many books each
    first_grade: int = 4
    max_historical_books: int = 20


@dataclass
class TierDefaults:
    """Reward text assigned to freshly derived achievement tiers."""

    first: str = "Recognition at Mass"
    second: str = "Certificate"
    third: str = "Party"
    annual: str = "Medal"
    lifetime: str = "Plaque"

    def as_list(self) -> list[str]:
        """Rewards in tier order (1..5)."""
        return [self.first, self.second, self.third, self.annual, self.lifetime]


@dataclass
class StorageConfig:
    """Document store backend selection."""

    backend: str = "sqlite"  # sqlite | memory
    db_path: str = "db/luxlibris.db"


@dataclass
class AppConfig:
    """Application-wide configuration."""

    program: ProgramSettings = field(default_factory=ProgramSettings)
    tiers: TierDefaults = field(default_factory=TierDefaults)
    storage: StorageConfig = field(default_factory=StorageConfig)


# Module-level cache
_cached_config: AppConfig | None = None


def _get_defaults() -> dict[str, Any]:
    """Get default configuration values."""
    return {
        "program": {
            "default_ceiling": 20,
            "note_max_length": 500,
            "revision_cooldown_hours": 24,
            "quiz_cooldown_hours": 24,
            "first_grade": 4,
            "max_historical_books": 20,
        },
        "tiers": {
            "first": "Recognition at Mass",
            "second": "Certificate",
            "third": "Party",
            "annual": "Medal",
            "lifetime": "Plaque",
        },
        "storage": {
            "backend": "sqlite",
            "db_path": "db/luxlibris.db",
        },
    }


def _parse_config(data: dict[str, Any]) -> AppConfig:
    """Parse configuration dictionary into AppConfig object."""
    defaults = _get_defaults()

    program_data = {**defaults["program"], **(data.get("program") or {})}
    program = ProgramSettings(
        default_ceiling=int(program_data["default_ceiling"]),
        note_max_length=int(program_data["note_max_length"]),
        revision_cooldown_hours=int(program_data["revision_cooldown_hours"]),
        quiz_cooldown_hours=int(program_data["quiz_cooldown_hours"]),
        first_grade=int(program_data["first_grade"]),
        max_historical_books=int(program_data["max_historical_books"]),
    )

    tier_data = {**defaults["tiers"], **(data.get("tiers") or {})}
    tiers = TierDefaults(
        first=tier_data["first"],
        second=tier_data["second"],
        third=tier_data["third"],
        annual=tier_data["annual"],
        lifetime=tier_data["lifetime"],
    )

    storage_data = {**defaults["storage"], **(data.get("storage") or {})}
    storage = StorageConfig(
        backend=storage_data["backend"],
        db_path=storage_data["db_path"],
    )

    if program.default_ceiling < 1:
        logger.warning("invalid_default_ceiling", value=program.default_ceiling)
        program.default_ceiling = 20

    return AppConfig(program=program, tiers=tiers, storage=storage)


def _config_path() -> Path:
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override)
    return CONFIG_FILE


def load_app_config(force_reload: bool = False) -> AppConfig:
    """Load application config, falling back to built-in defaults.

    Args:
        force_reload: If True, ignore cached config and reload from file.

    Returns:
        AppConfig object with all settings.
    """
    global _cached_config

    if _cached_config is not None and not force_reload:
        return _cached_config

    path = _config_path()
    data: dict[str, Any]

    if path.exists():
        logger.debug("loading_app_config", source=str(path))
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    else:
        logger.info("using_default_config", missing=str(path))
        data = _get_defaults()

    _cached_config = _parse_config(data)
    return _cached_config


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing or when config is modified at runtime.
    """
    global _cached_config
    _cached_config = None
