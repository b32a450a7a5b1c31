"""Configuration package for the learning portal."""

from portal.config.app_config import (
    AppConfig,
    QuizConfig,
    clear_config_cache,
    get_quiz_config,
    load_app_config,
)

__all__ = [
    "AppConfig",
    "QuizConfig",
    "clear_config_cache",
    "get_quiz_config",
    "load_app_config",
]
