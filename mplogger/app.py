"""
Application wiring for the mplogger server.

LogServer owns one AggregationStore for its whole lifetime and passes it
explicitly to the acceptor, the viewer and the diagnostics API. There is
no process-wide store instance.
"""

import curses
import logging
import threading
from typing import Optional

from . import __version__
from .api import DiagnosticsServer, create_app
from .config import Config
from .models import LogLevel
from .server import ConnectionAcceptor
from .state import ScrollSpeed, ViewerState
from .store import AggregationStore
from .ui import run_viewer
from .utils.logging import StoreLogHandler, disable_console_logging

logger = logging.getLogger(__name__)


class LogServer:
    """
    A running aggregation server: store, acceptor and optional extras.

    Example:
        >>> server = LogServer(config)
        >>> server.start()
        >>> server.run_viewer()   # or server.wait() when headless
        >>> server.stop()
    """

    def __init__(self, config: Config):
        self.config = config
        self.store = AggregationStore(capacity=config.server.capacity)
        self.acceptor = ConnectionAcceptor(
            self.store,
            config.server.socket_path,
            max_field_length=config.server.max_field_length,
            backlog=config.server.accept_backlog,
            shutdown_timeout=config.server.shutdown_timeout,
        )
        self.diagnostics: Optional[DiagnosticsServer] = None
        self._store_handler: Optional[StoreLogHandler] = None
        self._stop_requested = threading.Event()
        self._stopped = False

    def start(self) -> None:
        """
        Bind the socket and start accepting clients.

        Raises:
            BindError: If the socket path cannot be used
        """
        self.acceptor.start()

        if self.config.logging.feed_store:
            self._store_handler = StoreLogHandler(self.store)
            logging.getLogger().addHandler(self._store_handler)

        if self.config.diagnostics.enabled:
            app = create_app(self.store, self.acceptor)
            self.diagnostics = DiagnosticsServer(
                app, self.config.diagnostics.socket_path, self.config.diagnostics.log_level
            )
            self.diagnostics.start()

        logger.info(f"mplogger {__version__} started on {self.config.server.socket_path}")

    def initial_viewer_state(self) -> ViewerState:
        speed = ScrollSpeed(self.config.viewer.default_speed)
        return ViewerState(
            scroll_speed=speed,
            min_level_filter=LogLevel.parse(self.config.viewer.min_level),
        )

    def _title(self) -> str:
        return f"{self.config.server.socket_path}  clients {self.acceptor.connection_count()}"

    def run_viewer(self) -> ViewerState:
        """Run the curses viewer on this terminal until the operator quits."""
        disable_console_logging()
        return curses.wrapper(
            run_viewer,
            self.store,
            self.initial_viewer_state(),
            self.config.viewer.tick_interval,
            self._title,
        )

    def request_stop(self) -> None:
        self._stop_requested.set()

    def wait(self) -> None:
        """Block a headless server until request_stop() is called."""
        while not self._stop_requested.wait(timeout=0.5):
            pass

    def stop(self) -> None:
        """Shut everything down. Safe to call more than once."""
        if self._stopped:
            return
        self._stopped = True
        logger.info("mplogger shutting down")

        if self.diagnostics is not None:
            self.diagnostics.stop()
        self.acceptor.shutdown()
        if self._store_handler is not None:
            logging.getLogger().removeHandler(self._store_handler)
            self._store_handler = None
