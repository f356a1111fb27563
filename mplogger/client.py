"""
Client side of mplogger: ships log records to the aggregation server.

Emission is best effort. Records below the level filter are dropped before
any framing or I/O, writes from different threads are serialized so frames
never interleave, and a broken connection never raises into the caller:
the record is dropped and the connection is re-established lazily on a
later call.

Typical use goes through init(), which hooks the stdlib logging module:

    >>> import logging
    >>> from mplogger.client import init
    >>> init("/tmp/mp-logger-socket", "debug")
    >>> logging.getLogger("worker").info("started")
"""

import logging
import os
import socket
import struct
import threading
import time
from typing import Optional

from .bootstrap import connect, ensure_server
from .config import ClientConfig
from .exceptions import ConnectError, InitError
from .models import U32_MAX, LogLevel, LogRecord
from .protocol import DEFAULT_MAX_FIELD_LENGTH, encode_frame, truncate_field

logger = logging.getLogger(__name__)

TRACE = 5
logging.addLevelName(TRACE, "TRACE")


def current_thread_id() -> int:
    """Native id of the calling thread, folded into the u32 wire field."""
    return threading.get_native_id() & U32_MAX


class SocketEmitter:
    """
    Serialize records into frames and write them to the server socket.

    Attributes:
        socket_path: Path of the server socket.
        level_filter: Records below this level are dropped without I/O.
        send_timeout: Upper bound for taking the write lock and for each send.
        reconnect_interval: Minimum seconds between reconnection attempts.
        max_field_length: Targets and messages longer than this many UTF-8
            bytes are truncated so the server never rejects the frame.
        dropped: Number of records that could not be delivered.
    """

    def __init__(
        self,
        socket_path: str,
        level_filter=LogLevel.TRACE,
        send_timeout: float = 0.5,
        reconnect_interval: float = 1.0,
        sock: Optional[socket.socket] = None,
        max_field_length: int = DEFAULT_MAX_FIELD_LENGTH,
    ):
        self.socket_path = socket_path
        self.level_filter = LogLevel.parse(level_filter)
        self.send_timeout = send_timeout
        self.reconnect_interval = reconnect_interval
        self.max_field_length = max_field_length
        self.dropped = 0

        self._sock = sock
        if sock is not None:
            sock.settimeout(send_timeout)
        self._lock = threading.Lock()
        self._sequence = 0
        self._next_attempt = 0.0
        self._closed = False
        self._pid = os.getpid()

    @property
    def connected(self) -> bool:
        return self._sock is not None

    def enabled(self, level) -> bool:
        return LogLevel.parse(level) >= self.level_filter

    def _reset_after_fork(self) -> None:
        # The inherited socket belongs to the parent's connection
        self._lock = threading.Lock()
        if self._sock is not None:
            self._sock.close()
        self._sock = None
        self._sequence = 0
        self._next_attempt = 0.0
        self._pid = os.getpid()

    def _disconnect(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
        self._sock = None
        self._next_attempt = time.monotonic() + self.reconnect_interval

    def _ensure_connected(self) -> Optional[socket.socket]:
        if self._sock is not None:
            return self._sock
        if time.monotonic() < self._next_attempt:
            return None
        try:
            self._sock = connect(self.socket_path, timeout=self.send_timeout)
        except ConnectError:
            self._next_attempt = time.monotonic() + self.reconnect_interval
            return None
        return self._sock

    def emit(self, record: LogRecord) -> bool:
        """
        Write one record to the server.

        Never raises. Returns within roughly send_timeout even when the
        server is unreachable or stalled.

        Args:
            record: The record to send

        Returns:
            bool: True if the frame was written, False if it was filtered
                  out or dropped
        """
        if record.level < self.level_filter:
            return False
        if os.getpid() != self._pid:
            self._reset_after_fork()

        if not self._lock.acquire(timeout=self.send_timeout):
            self.dropped += 1
            return False
        try:
            if self._closed:
                self.dropped += 1
                return False
            sock = self._ensure_connected()
            if sock is None:
                self.dropped += 1
                return False

            try:
                frame = encode_frame(record.model_copy(update={
                    "sequence": self._sequence,
                    "target": truncate_field(record.target, self.max_field_length),
                    "message": truncate_field(record.message, self.max_field_length),
                }))
            except (struct.error, ValueError):
                self.dropped += 1
                return False

            try:
                sock.sendall(frame)
            except OSError:
                # A partial frame may be on the wire; only closing keeps the stream parseable
                self._disconnect()
                self.dropped += 1
                return False

            self._sequence += 1
            return True
        finally:
            self._lock.release()

    def log(self, level, message: str, target: str = "") -> bool:
        """Build a record for the calling process and thread, then emit it."""
        level = LogLevel.parse(level)
        if level < self.level_filter:
            return False
        return self.emit(LogRecord(
            process_id=os.getpid() & U32_MAX,
            thread_id=current_thread_id(),
            level=level,
            target=target,
            message=message,
        ))

    def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        with self._lock:
            self._closed = True
            if self._sock is not None:
                try:
                    self._sock.close()
                except OSError:
                    pass
                self._sock = None


class MPLogHandler(logging.Handler):
    """Logging handler that forwards stdlib log records through a SocketEmitter."""

    def __init__(self, emitter: SocketEmitter):
        super().__init__(level=emitter.level_filter.to_stdlib())
        self.emitter = emitter

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
            self.emitter.emit(LogRecord(
                process_id=(record.process or os.getpid()) & U32_MAX,
                thread_id=current_thread_id(),
                level=LogLevel.from_stdlib(record.levelno),
                target=record.name,
                message=message,
            ))
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        self.emitter.close()
        super().close()


class Logger:
    """
    Leveled logging façade bound to one target name.

    Example:
        >>> log = get_logger("worker")
        >>> log.warn("queue is backing up")
    """

    def __init__(self, target: str, emitter: SocketEmitter):
        self.target = target
        self.emitter = emitter

    def log(self, level, message: str) -> bool:
        return self.emitter.log(level, message, target=self.target)

    def trace(self, message: str) -> bool:
        return self.log(LogLevel.TRACE, message)

    def debug(self, message: str) -> bool:
        return self.log(LogLevel.DEBUG, message)

    def info(self, message: str) -> bool:
        return self.log(LogLevel.INFO, message)

    def warn(self, message: str) -> bool:
        return self.log(LogLevel.WARN, message)

    warning = warn

    def error(self, message: str) -> bool:
        return self.log(LogLevel.ERROR, message)


_install_lock = threading.Lock()
_installed: Optional[MPLogHandler] = None


def init(
    socket_path: str,
    level_filter="trace",
    spawn: Optional[bool] = None,
    config: Optional[ClientConfig] = None,
) -> MPLogHandler:
    """
    Connect this process to a log server and route stdlib logging to it.

    Spawns a headless server if nothing answers on socket_path (unless
    spawning is disabled), then installs an MPLogHandler on the root
    logger.

    Args:
        socket_path: Path of the server socket
        level_filter: Minimum level shipped to the server
        spawn: Whether to spawn a server; defaults to config.spawn_server
        config: Client settings, defaults to ClientConfig()

    Returns:
        MPLogHandler: The installed handler

    Raises:
        InitError: If already initialized, the level is invalid, or no
                   server can be reached
    """
    global _installed
    config = config or ClientConfig()
    try:
        level = LogLevel.parse(level_filter)
    except ValueError as e:
        raise InitError(str(e)) from e

    with _install_lock:
        if _installed is not None:
            raise InitError("mplogger client is already initialized")

        try:
            sock = ensure_server(
                socket_path,
                spawn=config.spawn_server if spawn is None else spawn,
                retries=config.spawn_retries,
                backoff=config.spawn_backoff,
                timeout=config.send_timeout,
            )
        except ConnectError as e:
            raise InitError(f"Cannot reach log server: {e}") from e

        emitter = SocketEmitter(
            socket_path,
            level_filter=level,
            send_timeout=config.send_timeout,
            reconnect_interval=config.reconnect_interval,
            sock=sock,
        )
        handler = MPLogHandler(emitter)
        root = logging.getLogger()
        root.addHandler(handler)
        if root.level == logging.NOTSET or root.level > level.to_stdlib():
            root.setLevel(level.to_stdlib())
        _installed = handler

    logger.debug(f"Logging to {socket_path} at {level.name} and above")
    return handler


def shutdown() -> None:
    """Remove the installed handler and close its connection. Safe to call twice."""
    global _installed
    with _install_lock:
        handler = _installed
        _installed = None
    if handler is not None:
        logging.getLogger().removeHandler(handler)
        handler.close()


def get_logger(target: str) -> Logger:
    """
    Return a Logger façade using the emitter installed by init().

    Raises:
        InitError: If init() has not been called
    """
    with _install_lock:
        handler = _installed
    if handler is None:
        raise InitError("mplogger client is not initialized")
    return Logger(target, handler.emitter)
