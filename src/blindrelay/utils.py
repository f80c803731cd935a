"""
blindrelay - Utility functions.

Logging setup and small validation helpers shared by the server and
client entry points.
"""

import logging
import logging.handlers
from pathlib import Path
from typing import Optional, Union

from .constants import LOG_BACKUP_COUNT, LOG_DATE_FORMAT, LOG_FORMAT, LOG_MAX_BYTES

logger = logging.getLogger(__name__)


def setup_logging(level: Union[str, int] = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the blindrelay package logger.

    Args:
        level: Logging level name or number
        log_file: Optional path of a rotating log file

    Returns:
        The configured package logger
    """
    package_logger = logging.getLogger("blindrelay")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    package_logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    if not package_logger.handlers:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        package_logger.addHandler(console)

        if log_file:
            path = Path(log_file).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8"
            )
            file_handler.setFormatter(formatter)
            package_logger.addHandler(file_handler)

    return package_logger


def validate_port(port: int) -> bool:
    """
    Validate port number.

    Args:
        port: Port number to validate

    Returns:
        True if valid, False otherwise
    """
    return isinstance(port, int) and 1 <= port <= 65535


def validate_name(name: str, max_length: int) -> bool:
    """Check a room or display name: non-empty, printable, bounded."""
    if not isinstance(name, str):
        return False
    name = name.strip()
    return 0 < len(name) <= max_length and name.isprintable()
