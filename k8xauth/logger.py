"""
k8xauth.logger

Process logging setup. The logger is built once at startup and handed to
discovery and exchange code explicitly.
"""

import json
import logging
import sys
from typing import Optional

LOGGER_NAME = "k8xauth"
TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class JSONFormatter(logging.Formatter):
    """Formats records as one JSON object per line."""

    def format(self, record):
        entry = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logger(
    level: str = "info",
    log_format: str = "text",
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Build the process logger.

    Args:
        level: debug, info, warn or error; anything else means info
        log_format: 'text' or 'json'
        log_file: File to append to; stderr if not set, since stdout
                  carries the ExecCredential

    Returns:
        logging.Logger: The configured 'k8xauth' logger

    Raises:
        OSError: If the log file can't be opened
    """
    if log_file:
        handler = logging.FileHandler(log_file, mode="a")
    else:
        handler = logging.StreamHandler(sys.stderr)

    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    logger = logging.getLogger(LOGGER_NAME)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.setLevel(LOG_LEVELS.get((level or "").lower(), logging.INFO))
    logger.propagate = False
    return logger
