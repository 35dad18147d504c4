"""
Logging Configuration Module.

This module provides centralized logging configuration for pinchgate.
It sets up console (and optional file) logging with different levels for
different modules.

Features:
- Configurable log levels per module
- Console and file logging
- Simple, detailed and JSON-shaped formats
"""

import logging
from pathlib import Path
from typing import Optional

# Define log formats
SIMPLE_FORMAT = "%(levelname)s - %(name)s - %(message)s"

DETAILED_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(funcName)s() - %(message)s"

JSON_FORMAT = (
    '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", '
    '"module": "%(filename)s", "function": "%(funcName)s", "line": %(lineno)d, '
    '"message": "%(message)s"}'
)

LOG_FILE_NAME = "pinchgate.log"

# Module-specific log levels
MODULE_LOG_LEVELS = {
    # Core components
    "pinchgate.abilities": "DEBUG",
    "pinchgate.approvals": "DEBUG",
    "pinchgate.resilience": "DEBUG",
    "pinchgate.governance": "DEBUG",
    "pinchgate.webhooks": "INFO",
    "pinchgate.gateway": "INFO",
    "pinchgate.audit": "INFO",
    "pinchgate.repos": "INFO",
    "pinchgate.cli": "INFO",
    # Third-party libraries (reduce noise)
    "sqlalchemy": "WARNING",
    "sqlalchemy.engine": "WARNING",
    "sqlalchemy.pool": "WARNING",
    "aiosqlite": "WARNING",
    "httpx": "WARNING",
    "httpcore": "WARNING",
    "asyncio": "WARNING",
}


def _format_for(name: str) -> str:
    if name == "json":
        return JSON_FORMAT
    if name == "simple":
        return SIMPLE_FORMAT
    return DETAILED_FORMAT


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    log_file_dir: Optional[str] = None,
) -> None:
    """
    Configure logging for the process.

    Args:
        log_level: Console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL); defaults to INFO
        log_format: Format name (simple, detailed, json); defaults to detailed
        log_file_dir: Directory for ``pinchgate.log``; file logging is off when omitted
    """
    level = (log_level or "INFO").upper()
    fmt = log_format or "detailed"

    formatter = logging.Formatter(_format_for(fmt), datefmt="%Y-%m-%d %H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all levels, filter at handler level

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file_dir:
        Path(log_file_dir).mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(Path(log_file_dir) / LOG_FILE_NAME)
        file_handler.setLevel(logging.DEBUG)  # Always log DEBUG to file
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for module_name, module_level in MODULE_LOG_LEVELS.items():
        logging.getLogger(module_name).setLevel(module_level)

    root_logger.debug(f"Logging configured: level={level}, format={fmt}, file_logging={bool(log_file_dir)}")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: The module name (typically __name__)

    Returns:
        A configured logger instance
    """
    return logging.getLogger(name)
