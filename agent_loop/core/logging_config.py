"""
Logging Configuration Module.

Centralized logging for the agent loop. Every module obtains its logger through
``get_logger(__name__)``; ``setup_logging`` installs the handlers once per process,
usually from the application entry point that owns the coordinators.

Features:
- Console handler filtered at the configured level, root logger at DEBUG
- Optional ``agent_loop.log`` file handler that always records DEBUG
- Per-package levels, with the turn runtime at DEBUG and noisy clients at WARNING
- Simple, detailed and JSON-like line formats
"""

import logging
from pathlib import Path
from typing import Dict, Optional

from .config import LoggingConfig, settings

_config: LoggingConfig = settings.logging
LOG_LEVEL = _config.level.upper()
LOG_FORMAT = _config.format
LOG_FILE_DIR = _config.file_dir
ENABLE_FILE_LOGGING = _config.enable_file
LOG_FILE_NAME = "agent_loop.log"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


SIMPLE_FORMAT = "%(levelname)s - %(name)s - %(message)s"

DETAILED_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(funcName)s() - %(message)s"

JSON_FORMAT = (
    '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", '
    '"module": "%(filename)s", "function": "%(funcName)s", "line": %(lineno)d, '
    '"message": "%(message)s"}'
)

_FORMATS: Dict[str, str] = {
    "simple": SIMPLE_FORMAT,
    "detailed": DETAILED_FORMAT,
    "json": JSON_FORMAT,
}


# Per-package levels; child loggers such as agent_loop.runtime.coordinator inherit them.
MODULE_LOG_LEVELS = {
    "agent_loop.runtime": "DEBUG",
    "agent_loop.state": "INFO",
    "agent_loop.repos": "INFO",
    "agent_loop.planning": "INFO",
    "agent_loop.locks": "INFO",
    "agent_loop.sweeper": "INFO",
    "redis": "WARNING",
    "httpx": "WARNING",
    "asyncio": "WARNING",
}


def _file_handler(formatter: logging.Formatter) -> logging.Handler:
    log_dir = Path(LOG_FILE_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_dir / LOG_FILE_NAME)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    enable_file: bool = True,
) -> None:
    """
    Configure logging for the agent loop.

    Calling it again replaces the previously installed handlers.

    Args:
        log_level: Console level override (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Format override (simple, detailed, json); unknown names use detailed
        enable_file: Allow the file handler; it is only added when AGENT_LOOP_ENABLE_FILE_LOGGING is on as well
    """
    level = (log_level or LOG_LEVEL).upper()
    fmt = log_format or LOG_FORMAT
    formatter = logging.Formatter(_FORMATS.get(fmt, DETAILED_FORMAT), datefmt=DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    file_logging = enable_file and ENABLE_FILE_LOGGING
    if file_logging:
        root_logger.addHandler(_file_handler(formatter))

    for module_name, module_level in MODULE_LOG_LEVELS.items():
        logging.getLogger(module_name).setLevel(module_level)

    root_logger.info(f"Agent loop logging configured: level={level}, format={fmt}, file_logging={file_logging}")


def get_logger(name: str) -> logging.Logger:
    """Return the logger for ``name`` (typically ``__name__``)."""
    return logging.getLogger(name)
