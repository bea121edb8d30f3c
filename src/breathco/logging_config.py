"""Centralized logging configuration for breathco."""

import logging
import logging.config
import os
import sys

from pathlib import Path
from typing import Any

from breathco.constants import (
    DEFAULT_LOG_BACKUP_COUNT,
    DEFAULT_LOG_DIR,
    DEFAULT_LOG_FILE,
    DEFAULT_LOG_MAX_BYTES,
)

_logging_configured = False

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_log_dir() -> Path:
    """Get log directory path, creating if needed."""
    log_dir = DEFAULT_LOG_DIR
    os.makedirs(log_dir, mode=0o700, exist_ok=True)
    return log_dir


def get_log_path() -> Path:
    """Get path to the active log file."""
    return get_log_dir() / DEFAULT_LOG_FILE


def _get_user_logging_config() -> dict[str, Any]:
    """
    Load the [logging] table from the config file.

    Returns:
        Dictionary with logging settings, or empty dict if not configured
    """
    from breathco.config import load_config

    logging_config = load_config().get("logging", {})
    return logging_config if isinstance(logging_config, dict) else {}


def _build_logging_config(
    verbose: bool = False,
    console_format: str | None = None,
) -> dict[str, Any]:
    """
    Build the dictConfig configuration dictionary.

    Args:
        verbose: If True, set console to DEBUG level
        console_format: Override console format string

    Returns:
        Dictionary suitable for logging.config.dictConfig()
    """
    user_config = _get_user_logging_config()
    file_enabled = user_config.get("enabled", True)
    file_level = str(user_config.get("level", "DEBUG")).upper()
    max_bytes = (
        int(user_config["max_size_mb"] * 1024 * 1024)
        if "max_size_mb" in user_config
        else DEFAULT_LOG_MAX_BYTES
    )
    backup_count = user_config.get("backup_count", DEFAULT_LOG_BACKUP_COUNT)

    config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {"format": console_format or LOG_FORMAT},
            "file": {"format": LOG_FORMAT},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": "DEBUG" if verbose else "INFO",
                "formatter": "console",
                "stream": "ext://sys.stderr",
            },
        },
        "root": {
            "level": "DEBUG",
            "handlers": ["console"],
        },
    }

    if file_enabled:
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": file_level,
            "formatter": "file",
            "filename": str(get_log_path()),
            "maxBytes": max_bytes,
            "backupCount": backup_count,
            "encoding": "utf-8",
        }
        config["root"]["handlers"].append("file")

    return config


def setup_logging(
    *,
    verbose: bool = False,
    console_format: str | None = None,
) -> None:
    """
    Configure logging once per process.

    Args:
        verbose: If True, set console to DEBUG level
        console_format: Override console format string. If None, uses full format.
    """
    global _logging_configured

    if _logging_configured:
        return

    try:
        config = _build_logging_config(verbose=verbose, console_format=console_format)
        logging.config.dictConfig(config)
    except Exception as e:
        sys.stderr.write(f"WARNING: Failed to configure logging: {e}\n")
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.INFO,
            format=console_format or "%(levelname)s: %(message)s",
        )

    _logging_configured = True
