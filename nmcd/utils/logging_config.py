"""Logging configuration for nmcd.

Console output goes through Rich, the daemon log file sits in the
network-namespaced log directory and rotates by size.
"""

from __future__ import annotations

import logging
import logging.config
import sys
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

DEFAULT_LOG_FILENAME = "nmcd.log"


def create_rich_handler(
    console: Console | None = None,
    level: int | str = logging.INFO,
    show_path: bool = False,
    rich_tracebacks: bool = True,
) -> RichHandler:
    """Create the console RichHandler used by the daemon.

    Args:
        console: Optional Rich Console instance (defaults to stderr)
        level: Log level
        show_path: Whether to show file paths in log output
        rich_tracebacks: Whether to use rich tracebacks

    Returns:
        Configured RichHandler instance

    """
    if console is None:
        console = Console(file=sys.stderr)

    # Markup stays off: log lines carry bracketed IPv6 hosts
    return RichHandler(
        console=console,
        level=level,
        show_path=show_path,
        rich_tracebacks=rich_tracebacks,
        markup=False,
    )


def setup_logging(level: str = "INFO", log_dir: str | Path | None = None) -> Path | None:
    """Set up console and file logging.

    Args:
        level: Standard logging level name
        log_dir: Directory for the rotating log file; no file logging if None

    Returns:
        Path of the log file, or None when only console logging is active

    """
    log_file: Path | None = None
    if log_dir is not None:
        log_file = Path(log_dir) / DEFAULT_LOG_FILENAME
        log_file.parent.mkdir(parents=True, exist_ok=True)

    logging_config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "simple": {
                "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {},
        "loggers": {
            "nmcd": {
                "level": level,
                "handlers": [],
                "propagate": False,
            },
        },
        "root": {
            "level": level,
            "handlers": [],
        },
    }

    if log_file is not None:
        logging_config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": "simple",
            "filename": str(log_file),
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 3,
            "encoding": "utf-8",
        }
        logging_config["loggers"]["nmcd"]["handlers"].append("file")

    logging.config.dictConfig(logging_config)

    # RichHandler is attached after dictConfig so it keeps its own console
    rich_handler = create_rich_handler(level=level)
    logging.getLogger().addHandler(rich_handler)
    logging.getLogger("nmcd").addHandler(rich_handler)

    return log_file


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``nmcd`` namespace."""
    if name == "nmcd" or name.startswith("nmcd."):
        return logging.getLogger(name)
    return logging.getLogger(f"nmcd.{name}")
