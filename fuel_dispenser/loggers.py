"""
Logging configuration for the fuel dispenser controller.

This module provides a centralized logging setup with support for:
- Console output with colored formatting
- File rotation with size limits
- Remote logging to Loki
"""

import logging
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Final, Optional

import colorlog
import httpx

from fuel_dispenser.infrastructure.settings import get_settings


# =============================================================================
# Constants
# =============================================================================

DEFAULT_LOG_FORMAT: Final[str] = (
    "%(name)s | %(asctime)s | %(levelname)s | %(funcName)s:%(lineno)d | %(message)s"
)
DEFAULT_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"
MAX_LOG_FILE_SIZE: Final[int] = 5 * 1024 * 1024  # 5 MB
LOG_BACKUP_COUNT: Final[int] = 3
LOKI_TIMEOUT: Final[float] = 2.0


# =============================================================================
# Color Configuration
# =============================================================================

LOG_COLORS: Final[dict[str, str]] = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}


# =============================================================================
# Loki Integration
# =============================================================================

def send_to_loki(url: str, level: str, message: str, app: str) -> None:
    """
    Send a log entry to Loki.

    Args:
        url: Loki push endpoint.
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        message: Log message.
        app: Application name for Loki labels.
    """
    try:
        log_entry = {
            "streams": [
                {
                    "stream": {"level": level, "app": app},
                    "values": [[str(int(time.time() * 1e9)), message]],
                }
            ]
        }
        headers = {"Content-Type": "application/json"}
        with httpx.Client() as client:
            client.post(url, json=log_entry, headers=headers, timeout=LOKI_TIMEOUT)
    except httpx.HTTPError as e:
        # Avoid recursive logging - just print to stderr
        print(f"[Loki send error]: {e}")


class LokiHandler(logging.Handler):
    """
    Logging handler that pushes records to Loki.

    Attributes:
        url: Loki push endpoint.
        app: Application name for Loki labels.
    """

    def __init__(self, url: str, app: str) -> None:
        super().__init__()
        self.url = url
        self.app = app

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
            send_to_loki(self.url, record.levelname.upper(), message, self.app)
        except Exception:
            self.handleError(record)


# =============================================================================
# Logger Factory
# =============================================================================

def get_logger(
    name: str,
    app: str = "fuel_dispenser",
    log_file: Optional[str] = None,
    level: int = logging.DEBUG,
    loki_url: Optional[str] = None,
) -> logging.Logger:
    """
    Create and configure a logger with console, file, and Loki handlers.

    The file handler is only attached when ``log_file`` is given and the
    Loki handler only when ``loki_url`` is given.

    Args:
        name: Logger name.
        app: Application name for Loki labels.
        log_file: Path to the rotating log file.
        level: Logging level (default: DEBUG).
        loki_url: Loki push endpoint.

    Returns:
        Configured logger instance.
    """
    logger_instance = logging.getLogger(name)
    logger_instance.setLevel(level)

    # Avoid duplicate handlers on repeated calls
    if logger_instance.handlers:
        return logger_instance

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(
        colorlog.ColoredFormatter(
            f"%(name)s | %(log_color)s%(asctime)s | %(levelname)s | "
            f"%(funcName)s:%(lineno)d | %(message)s",
            datefmt=DEFAULT_DATE_FORMAT,
            log_colors=LOG_COLORS,
        )
    )
    logger_instance.addHandler(console_handler)

    # File handler with rotation
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=MAX_LOG_FILE_SIZE,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(
            logging.Formatter(fmt=DEFAULT_LOG_FORMAT, datefmt=DEFAULT_DATE_FORMAT)
        )
        logger_instance.addHandler(file_handler)

    # Loki handler
    if loki_url:
        loki_handler = LokiHandler(loki_url, app)
        loki_handler.setLevel(level)
        loki_handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s",
                datefmt=DEFAULT_DATE_FORMAT,
            )
        )
        logger_instance.addHandler(loki_handler)

    return logger_instance


# =============================================================================
# Default Logger Instance
# =============================================================================

_logging_settings = get_settings().logging

logger = get_logger(
    name="fuel_dispenser",
    app=_logging_settings.app,
    log_file=_logging_settings.log_file,
    level=_logging_settings.level,
    loki_url=_logging_settings.loki_url,
)
