# app_logger.py
"""
A small wrapper around the standard library `logging` module.
All parts of the program import `logger` from here, so we have a single
source of truth for log configuration.

Nothing is written to stderr or to a file until ``configure_logging`` is
called: the report goes to stdout and the curses view owns the terminal,
so each entry point decides where log lines may go.
"""

import logging
from collections import deque
from pathlib import Path
from typing import Deque, Optional, TextIO, Union

# ----------------------------------------------------------------------
# 1️⃣ Dedicated logger, detached from the root logger
# ----------------------------------------------------------------------
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

logger = logging.getLogger("AirPodsLogger")   # use a dedicated namespace
logger.setLevel(logging.INFO)
logger.propagate = False                       # keep stdout clean for the report

formatter = logging.Formatter(LOG_FORMAT)

# ----------------------------------------------------------------------
# 2️⃣ In‑memory handler – stores the last N log records for the UI
# ----------------------------------------------------------------------
MAX_LOG_RECORDS = 200   # keep the most recent 200 lines


class MemoryHandler(logging.Handler):
    """
    Simple handler that keeps the newest N formatted log strings in a
    thread‑safe deque.  The live view reads `handler.buffer` at any time.
    """
    def __init__(self, capacity: int = MAX_LOG_RECORDS):
        super().__init__()
        self.capacity = capacity
        self.buffer: Deque[str] = deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord) -> None:
        msg = self.format(record)
        self.buffer.append(msg)


memory_handler = MemoryHandler()
memory_handler.setFormatter(formatter)
logger.addHandler(memory_handler)

# Export the buffer so the view can read it without importing the whole logger.
log_buffer = memory_handler.buffer


# ----------------------------------------------------------------------
# 3️⃣ Output handlers, attached by the entry point
# ----------------------------------------------------------------------
def configure_logging(
    level: int = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Attach the stream and/or file handlers and set the logger level.

    Calling it again replaces the handlers installed by the previous call,
    the in‑memory handler is always kept.
    """
    for handler in list(logger.handlers):
        if handler is not memory_handler:
            logger.removeHandler(handler)
            handler.close()

    logger.setLevel(level)

    if stream is not None:
        stream_handler = logging.StreamHandler(stream)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)      # capture everything
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def log_debug(msg: str, *args, **kwargs) -> None:
    """Shortcut for `logger.debug(msg, *args, **kwargs)`."""
    logger.debug(msg, *args, **kwargs)
