"""Logging configuration helpers."""

import os
import sys
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}:{function}:{line}</cyan> | <level>{message}</level>"
)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {thread.name} | "
    "{name}:{function}:{line} | {message}"
)


def setup_logging(log_filename: str | None = "logs/socpulse.log", console: bool = True) -> None:
    """
    Configure loguru sinks.

    Args:
        log_filename: Rotating log file, or None for no file sink.
        console: Log to stderr. The dashboard turns this off because the
            terminal belongs to the TUI.
    """
    log_level = os.getenv("SOCPULSE_LOG_LEVEL", "INFO").upper()
    logger.remove()
    if console:
        logger.add(sink=sys.stderr, format=CONSOLE_FORMAT, level=log_level)
    if log_filename:
        log_path = Path(log_filename)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_path),
            rotation="1 MB",
            retention=10,
            compression="zip",
            level=log_level,
            format=FILE_FORMAT,
        )
