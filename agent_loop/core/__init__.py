"""Configuration and logging shared by every agent loop module."""

from .config import LoggingConfig, ReflectionPolicy, RedisLockConfig, Settings, settings
from .logging_config import get_logger, setup_logging

__all__ = [
    "LoggingConfig",
    "ReflectionPolicy",
    "RedisLockConfig",
    "Settings",
    "settings",
    "get_logger",
    "setup_logging",
]
