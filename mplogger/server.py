"""
Connection acceptor and per-connection readers.

The acceptor listens on a Unix domain stream socket and hands every
accepted connection to its own reader thread. Readers decode frames,
number them and ingest them into the AggregationStore. A connection that
fails is closed on its own; the acceptor and every other connection keep
running.
"""

import itertools
import logging
import os
import socket
import stat
import threading
from typing import Dict, List, Optional

from .exceptions import BindError, FrameError
from .models import ConnectionInfo, ConnectionState
from .protocol import DEFAULT_MAX_FIELD_LENGTH, FrameReader
from .store import AggregationStore

logger = logging.getLogger(__name__)


class Connection:
    """
    One accepted client connection and its reader thread.

    The process id is learned from the first frame. Every frame after
    that must carry the same process id.
    """

    def __init__(self, connection_id: int, sock: socket.socket):
        self.connection_id = connection_id
        self.process_id: Optional[int] = None
        self.state = ConnectionState.CONNECTED
        self.frames = 0
        self.reader_thread: Optional[threading.Thread] = None
        self._sock = sock
        self._lock = threading.Lock()

    def open_stream(self):
        """Return a buffered binary reader over the socket."""
        return self._sock.makefile("rb")

    def close(self) -> None:
        """Close the socket. Safe to call any number of times from any thread."""
        with self._lock:
            if self.state == ConnectionState.CLOSED:
                return
            self.state = ConnectionState.DRAINING
            try:
                self._sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                # Peer already gone
                pass
            self._sock.close()
            self.state = ConnectionState.CLOSED

    def info(self) -> ConnectionInfo:
        return ConnectionInfo(
            connection_id=self.connection_id,
            process_id=self.process_id,
            state=self.state,
            frames=self.frames,
        )


class ConnectionAcceptor:
    """
    Accept client connections and spawn one reader per connection.

    Attributes:
        store: The store every reader ingests into.
        socket_path: Filesystem path of the listening socket.

    Example:
        >>> acceptor = ConnectionAcceptor(store, "/tmp/mp-logger-socket")
        >>> acceptor.start()
        >>> ...
        >>> acceptor.shutdown()
    """

    def __init__(
        self,
        store: AggregationStore,
        socket_path: str,
        max_field_length: int = DEFAULT_MAX_FIELD_LENGTH,
        backlog: int = 64,
        shutdown_timeout: float = 2.0,
    ):
        self.store = store
        self.socket_path = socket_path
        self.max_field_length = max_field_length
        self.backlog = backlog
        self.shutdown_timeout = shutdown_timeout

        self._listener: Optional[socket.socket] = None
        self._accept_thread: Optional[threading.Thread] = None
        self._connections: Dict[int, Connection] = {}
        self._live_by_process: Dict[int, Connection] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._stopping = threading.Event()

    # --- Lifecycle ---

    def _clear_stale_socket(self) -> None:
        """Remove a leftover socket file, refusing if a server still answers on it."""
        try:
            mode = os.stat(self.socket_path).st_mode
        except FileNotFoundError:
            return
        if not stat.S_ISSOCK(mode):
            raise BindError(f"Path exists and is not a socket: {self.socket_path}")

        existing = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            existing.settimeout(0.5)
            existing.connect(self.socket_path)
        except OSError:
            logger.info(f"Removing stale socket file: {self.socket_path}")
            os.unlink(self.socket_path)
        else:
            raise BindError(f"A log server is already listening on {self.socket_path}")
        finally:
            existing.close()

    def bind(self) -> None:
        """
        Bind and listen on the socket path.

        Raises:
            BindError: If the path is unusable or already served
        """
        self._clear_stale_socket()
        listener = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            listener.bind(self.socket_path)
            listener.listen(self.backlog)
        except OSError as e:
            listener.close()
            raise BindError(f"Cannot listen on {self.socket_path}: {e}") from e
        self._listener = listener
        logger.info(f"Listening on {self.socket_path}")

    def start(self) -> None:
        """Bind if needed and run the accept loop on a background thread."""
        if self._listener is None:
            self.bind()
        self._accept_thread = threading.Thread(
            target=self.accept_loop, name="mplogger-acceptor", daemon=True
        )
        self._accept_thread.start()

    def accept_loop(self) -> None:
        """Accept connections until shutdown, spawning a reader for each."""
        if self._listener is None:
            self.bind()
        listener = self._listener
        while not self._stopping.is_set():
            try:
                sock, _addr = listener.accept()
            except OSError as e:
                if self._stopping.is_set():
                    break
                logger.error(f"Accept failed: {e}")
                continue

            connection = Connection(next(self._ids), sock)
            with self._lock:
                if self._stopping.is_set():
                    connection.close()
                    break
                self._connections[connection.connection_id] = connection
            thread = threading.Thread(
                target=self._read_loop,
                args=(connection,),
                name=f"mplogger-reader-{connection.connection_id}",
                daemon=True,
            )
            connection.reader_thread = thread
            thread.start()
            logger.debug(f"Accepted connection {connection.connection_id}")

        logger.debug("Accept loop stopped")

    def shutdown(self) -> None:
        """
        Stop accepting, close every connection and remove the socket file.

        Safe to call more than once. Records already ingested are kept.
        """
        if self._stopping.is_set():
            return
        self._stopping.set()

        listener = self._listener
        if listener is not None:
            try:
                listener.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            listener.close()

        with self._lock:
            connections = list(self._connections.values())
        for connection in connections:
            connection.close()
        for connection in connections:
            if connection.reader_thread is not None:
                connection.reader_thread.join(timeout=self.shutdown_timeout)
        if self._accept_thread is not None:
            self._accept_thread.join(timeout=self.shutdown_timeout)

        if listener is not None:
            try:
                os.unlink(self.socket_path)
            except FileNotFoundError:
                pass
        logger.info(f"Server on {self.socket_path} shut down")

    # --- Readers ---

    def _claim_process(self, connection: Connection, process_id: int) -> int:
        """Make this connection the live one for its process; returns the first sequence."""
        with self._lock:
            previous = self._live_by_process.get(process_id)
            self._live_by_process[process_id] = connection
        connection.process_id = process_id
        next_sequence = self.store.register_connection(process_id, connection.connection_id)
        if previous is not None and previous is not connection:
            logger.info(
                f"Process {process_id} reconnected; connection {connection.connection_id} "
                f"supersedes {previous.connection_id}"
            )
            previous.close()
        return next_sequence

    def _release(self, connection: Connection) -> None:
        connection.close()
        with self._lock:
            self._connections.pop(connection.connection_id, None)
            if connection.process_id is not None:
                if self._live_by_process.get(connection.process_id) is connection:
                    del self._live_by_process[connection.process_id]
        if connection.process_id is not None:
            self.store.release_connection(connection.process_id, connection.connection_id)

    def _read_loop(self, connection: Connection) -> None:
        stream = connection.open_stream()
        reader = FrameReader(stream, self.max_field_length)
        sequence = 0
        try:
            while True:
                record = reader.read_frame()
                if record is None:
                    logger.debug(f"Connection {connection.connection_id} closed by peer")
                    break

                if connection.process_id is None:
                    sequence = self._claim_process(connection, record.process_id)
                elif record.process_id != connection.process_id:
                    raise FrameError(
                        f"Frame for process {record.process_id} on a connection "
                        f"owned by process {connection.process_id}"
                    )

                stored = self.store.ingest(
                    record.model_copy(update={"sequence": sequence}),
                    connection_id=connection.connection_id,
                )
                if stored is None:
                    logger.debug(f"Connection {connection.connection_id} was superseded")
                    break
                sequence += 1
                connection.frames += 1
        except FrameError as e:
            logger.warning(f"Dropping connection {connection.connection_id}: {e}")
        except (OSError, ValueError) as e:
            # ValueError: the socket file was closed under us during shutdown
            if connection.state == ConnectionState.CONNECTED:
                logger.warning(f"Read error on connection {connection.connection_id}: {e}")
        except Exception as e:
            logger.error(f"Unexpected error on connection {connection.connection_id}: {e}")
        finally:
            stream.close()
            self._release(connection)

    # --- Diagnostics ---

    def connections(self) -> List[ConnectionInfo]:
        """Return a snapshot of the currently tracked connections."""
        with self._lock:
            connections = list(self._connections.values())
        return [connection.info() for connection in connections]

    def connection_count(self) -> int:
        with self._lock:
            return len(self._connections)
