"""
Logging setup.

Log records go to stderr and to an in-memory ring buffer that the control
API serves, so an operator can see recent activity without a log file.
"""

import logging
import sys
import threading
from collections import deque
from datetime import datetime
from typing import Dict, List, Optional


PACKAGE_LOGGER = "tidymonster"
DEFAULT_BUFFER_SIZE = 500
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class RingBufferHandler(logging.Handler):
    """Keeps the most recent `capacity` log entries in memory."""

    def __init__(self, capacity: int = DEFAULT_BUFFER_SIZE, level: int = logging.NOTSET):
        super().__init__(level)
        self._entries: deque = deque(maxlen=capacity)
        self._entries_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = {
                "timestamp": datetime.fromtimestamp(record.created).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
            }
            if record.exc_info and record.exc_info[1] is not None:
                entry["error"] = repr(record.exc_info[1])
            with self._entries_lock:
                self._entries.append(entry)
        except Exception:
            self.handleError(record)

    def entries(self, limit: Optional[int] = None) -> List[Dict[str, str]]:
        """Most recent entries, oldest first."""
        with self._entries_lock:
            items = list(self._entries)
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return items

    def clear(self) -> None:
        with self._entries_lock:
            self._entries.clear()


def configure_logging(
    buffer: Optional[RingBufferHandler] = None,
    minimum_severity: str = "INFO",
    stream=None,
) -> logging.Logger:
    """
    Attach handlers to the package logger and set its level.

    Safe to call again (e.g. after the severity setting changes): existing
    handlers installed by a previous call are replaced.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)

    for handler in list(logger.handlers):
        if getattr(handler, "_tidymonster", False):
            logger.removeHandler(handler)

    stream_handler = logging.StreamHandler(stream or sys.stderr)
    stream_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handlers: List[logging.Handler] = [stream_handler]
    if buffer is not None:
        handlers.append(buffer)

    for handler in handlers:
        handler._tidymonster = True
        logger.addHandler(handler)

    logger.setLevel(logging.INFO)
    logger.info("Logging initialized")

    level = logging.getLevelName(minimum_severity.upper())
    if not isinstance(level, int):
        logger.warning(f"Unknown minimum severity '{minimum_severity}', using INFO")
        level = logging.INFO
    logger.info(f"Setting minimum severity to {logging.getLevelName(level)}")
    logger.setLevel(level)

    return logger


def set_minimum_severity(minimum_severity: str) -> None:
    """Change the package log level at runtime."""
    level = logging.getLevelName(minimum_severity.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {minimum_severity}")
    logging.getLogger(PACKAGE_LOGGER).setLevel(level)
