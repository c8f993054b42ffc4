"""
Logging configuration for Message Archive.

Configures logging with dictConfig so it can be re-applied safely (the CLI
and the API server both call it, and tests call it repeatedly).

Environment Variables:
    LOG_LEVEL: Set log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to INFO if not set or invalid.
    MESSAGE_ARCHIVE_LOG_FILE: Optional path of a rotating log file.

Usage:
    from message_archive.logger_config import setup_logging
    setup_logging()  # Uses LOG_LEVEL env var, defaults to INFO

    # Or override explicitly:
    setup_logging(level=logging.DEBUG, log_file="scan.log")
"""

import logging
import logging.config
import os
from typing import Optional

LOG_FILE_ENV = "MESSAGE_ARCHIVE_LOG_FILE"

# Per-row recovery misses are logged at DEBUG; keep them out of INFO runs
# even when the root logger is verbose.
_NOISY_LOGGERS = ("message_archive.etl.recovery", "message_archive.etl.links")


def get_log_level() -> int:
    """
    Get log level from LOG_LEVEL environment variable.

    Supports: DEBUG, INFO, WARNING, ERROR, CRITICAL (case-insensitive).
    Defaults to INFO if not set or invalid.

    Returns:
        Logging level constant (e.g., logging.INFO).
    """
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, None)

    if level is None or not isinstance(level, int):
        return logging.INFO

    return level


def setup_logging(
    level: Optional[int] = None,
    format_string: Optional[str] = None,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure logging for the application using dictConfig.

    Args:
        level: Logging level. If None, reads from LOG_LEVEL env var (default: INFO).
        format_string: Optional custom format string.
        log_file: Optional file path to write logs to (with rotation). If None,
                  MESSAGE_ARCHIVE_LOG_FILE is consulted.
    """
    if level is None:
        level = get_log_level()

    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    if log_file is None:
        log_file = os.getenv(LOG_FILE_ENV) or None

    config: dict = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": format_string,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "standard",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            name: {"level": max(level, logging.INFO)} for name in _NOISY_LOGGERS
        },
        "root": {
            "level": level,
            "handlers": ["console"],
        },
    }

    if log_file:
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": "standard",
            "filename": log_file,
            "maxBytes": 10_485_760,  # 10 MB
            "backupCount": 5,
        }
        config["root"]["handlers"].append("file")

    logging.config.dictConfig(config)


def enable_recovery_debugging() -> None:
    """Let per-row recovery diagnostics through regardless of the root level."""
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG)
