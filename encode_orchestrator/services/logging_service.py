"""
This module configures the application's logging sinks.

All modules log through loguru's global `logger`. The sinks are set up once, by the
entry point, so that library use of the package never changes the host
application's logging: stderr always, plus an optional rotating log file.
"""
import sys
from pathlib import Path
from typing import Optional, Union

from loguru import logger

from ..config.common import LOG_FILE_RETENTION, LOG_FILE_ROTATION, LOGGER_FORMAT


def configure_logging(level: str = "INFO", log_file: Optional[Union[str, Path]] = None):
    """
    Replaces all loguru sinks with a stderr sink and, optionally, a file sink.

    Args:
        level: The minimum level of both sinks, e.g. "DEBUG" or "INFO".
        log_file: If given, log records are also written to this file, which is
                  rotated at `LOG_FILE_ROTATION` and kept for `LOG_FILE_RETENTION`
                  rotations.
    """
    logger.remove()
    logger.add(sys.stderr, level=level, format=LOGGER_FORMAT)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path,
            level=level,
            format=LOGGER_FORMAT,
            rotation=LOG_FILE_ROTATION,
            retention=LOG_FILE_RETENTION,
            encoding="utf-8",
        )
        logger.debug(f"Writing logs to {log_path}")
