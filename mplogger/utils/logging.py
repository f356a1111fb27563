"""
Logging setup for the mplogger server and CLI.

The server logs through the stdlib logging module. While the curses
viewer owns the terminal nothing may be written to stderr, so internal
logs go to an optional file and, through StoreLogHandler, into the store
itself under the server's own process id where the viewer shows them.
"""

import logging
import os
import sys
import threading
from typing import Optional

from ..models import U32_MAX, LogLevel, LogRecord

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None, console: bool = True) -> None:
    """
    Configure the root logger.

    Args:
        level: Root log level
        log_file: Optional file that receives every log line
        console: Whether to log to stderr
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT)
    if console:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        root.addHandler(stream_handler)
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
    if not root.handlers:
        root.addHandler(logging.NullHandler())

    root.setLevel(level)


def disable_console_logging() -> None:
    """Detach stderr handlers so the curses screen is not corrupted."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, logging.StreamHandler) and getattr(handler, "stream", None) in (sys.stderr, sys.stdout):
            root.removeHandler(handler)
    if not root.handlers:
        root.addHandler(logging.NullHandler())


class StoreLogHandler(logging.Handler):
    """
    Logging handler that ingests the server's own log records into the store.

    Records are filed under the server's process id and the native id of
    the logging thread, so they show up in the viewer like any client.
    """

    def __init__(self, store, level: int = logging.INFO):
        super().__init__(level=level)
        self.store = store
        self._process_id = os.getpid() & U32_MAX
        self._sequence = 0

    def emit(self, record: logging.LogRecord) -> None:
        # Handler.handle() holds self.lock here, which serializes _sequence
        try:
            self.store.ingest(LogRecord(
                process_id=self._process_id,
                thread_id=threading.get_native_id() & U32_MAX,
                level=LogLevel.from_stdlib(record.levelno),
                target=record.name,
                message=self.format(record),
                sequence=self._sequence,
            ))
            self._sequence += 1
        except Exception:
            self.handleError(record)
