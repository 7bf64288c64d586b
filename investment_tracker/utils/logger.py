"""
Investment Tracker - Logger Configuration
Centralized logging with loguru
"""
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from investment_tracker.config import settings


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """
    Configure loguru sinks.

    Replaces any existing handlers with a stderr sink and, when a log file
    is configured, a rotating file sink.

    Args:
        level: Minimum level (defaults to DEBUG in debug mode, else LOG_LEVEL)
        log_file: Optional log file path (defaults to LOG_FILE)
    """
    level = level or ("DEBUG" if settings.DEBUG else settings.LOG_LEVEL)
    log_file = log_file or settings.LOG_FILE

    logger.remove()
    logger.add(
        sys.stderr,
        colorize=True,
        format=CONSOLE_FORMAT,
        level=level,
    )

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            path,
            rotation="10 MB",
            retention="30 days",
            compression="gz",
            format=FILE_FORMAT,
            level="DEBUG",
        )


def get_logger(name: str = __name__):
    """
    Get a logger instance with the specified name.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    return logger.bind(name=name)


__all__ = ["logger", "get_logger", "setup_logging"]
