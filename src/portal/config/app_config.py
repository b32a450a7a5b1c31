"""Application configuration loader.

Loads centralized configuration from data/config/app_config_v1.yaml
with fallback to built-in defaults.

Usage:
    from portal.config.app_config import load_app_config, get_quiz_config

    config = load_app_config()
    duration = get_quiz_config().attempt_duration_seconds
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
CONFIG_FILE = Path("data/config/app_config_v1.yaml")

DEFAULT_ATTEMPT_DURATION_SECONDS = 900


@dataclass
class QuizConfig:
    """Constants of the quiz attempt engine."""

    attempt_duration_seconds: int = DEFAULT_ATTEMPT_DURATION_SECONDS
    max_attempts: int = 3
    autosave_delay_seconds: float = 1.0
    tick_interval_seconds: float = 1.0
    default_passing_score: int = 100


@dataclass
class AppConfig:
    """Application-wide configuration."""

    quiz: QuizConfig = field(default_factory=QuizConfig)
    paths: dict[str, str] = field(default_factory=dict)

    @property
    def db_path(self) -> Path:
        return Path(self.paths.get("db_path", "db/portal.db"))


# Module-level cache
_cached_config: AppConfig | None = None


def _get_defaults() -> dict[str, Any]:
    """Get default configuration values."""
    return {
        "quiz": {
            "attempt_duration_seconds": DEFAULT_ATTEMPT_DURATION_SECONDS,
            "max_attempts": 3,
            "autosave_delay_seconds": 1.0,
            "tick_interval_seconds": 1.0,
            "default_passing_score": 100,
        },
        "paths": {
            "db_path": "db/portal.db",
        },
    }


def _parse_config(data: dict[str, Any]) -> AppConfig:
    """Parse configuration dictionary into AppConfig object."""
    defaults = _get_defaults()
    quiz_data = {**defaults["quiz"], **(data.get("quiz") or {})}

    duration = int(quiz_data["attempt_duration_seconds"])
    if duration <= 0:
        raise ValueError(f"attempt_duration_seconds must be positive, got {duration}")

    quiz = QuizConfig(
        attempt_duration_seconds=duration,
        max_attempts=int(quiz_data["max_attempts"]),
        autosave_delay_seconds=float(quiz_data["autosave_delay_seconds"]),
        tick_interval_seconds=float(quiz_data["tick_interval_seconds"]),
        default_passing_score=int(quiz_data["default_passing_score"]),
    )

    paths = {**defaults["paths"], **(data.get("paths") or {})}

    return AppConfig(quiz=quiz, paths=paths)


def load_app_config(force_reload: bool = False) -> AppConfig:
    """Load application config, falling back to defaults.

    Args:
        force_reload: If True, ignore cached config and reload from file.

    Returns:
        AppConfig object with all settings.
    """
    global _cached_config

    if _cached_config is not None and not force_reload:
        return _cached_config

    data: dict[str, Any]

    if CONFIG_FILE.exists():
        logger.debug("loading_app_config", source=str(CONFIG_FILE))
        data = yaml.safe_load(CONFIG_FILE.read_text(encoding="utf-8")) or {}
    else:
        logger.info("using_default_config")
        data = _get_defaults()

    _cached_config = _parse_config(data)
    logger.debug(
        "quiz_config_loaded",
        attempt_duration_seconds=_cached_config.quiz.attempt_duration_seconds,
        max_attempts=_cached_config.quiz.max_attempts,
    )
    return _cached_config


def get_quiz_config() -> QuizConfig:
    """Get the quiz engine configuration."""
    return load_app_config().quiz


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing or when config is modified at runtime.
    """
    global _cached_config
    _cached_config = None
