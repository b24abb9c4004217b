"""
Logging configuration for SiteTrace.

Console output goes to stderr so it never mixes with report text on
stdout; an optional rotating log file keeps a history of runs.

by BitSpectreLabs
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional


LOGGER_NAME = "sitetrace"
CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    log_level: str = "WARNING",
    log_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    enable_console: bool = True,
) -> logging.Logger:
    """
    Configure the ``sitetrace`` package logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (no file logging if None)
        max_bytes: Max bytes per log file before rotation
        backup_count: Number of rotated files to keep
        enable_console: Log to stderr

    Returns:
        Configured logger instance
    """
    numeric_level = getattr(logging, (log_level or "WARNING").upper(), logging.WARNING)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(numeric_level)
    logger.propagate = False

    # Remove existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT)

    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        path = Path(log_file).expanduser()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                path,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            sys.stderr.write(f"Failed to set up file logging to {path}: {e}\n")

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    logger.debug(f"Logging configured at {logging.getLevelName(numeric_level)}")
    return logger
