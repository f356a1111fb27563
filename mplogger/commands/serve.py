"""
Serve command: run the aggregation server with or without the viewer.
"""

import argparse
import signal
import sys

from ..app import LogServer
from ..exceptions import BindError
from ..utils.colors import Colors
from .base import BaseCommand

EXIT_BIND_FAILURE = 2


class ServeCommand(BaseCommand):
    """Command to run the log server."""

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "--socket",
            help="Unix socket path to listen on (default: MPLOG_SOCKET or /tmp/mp-logger-socket)"
        )
        parser.add_argument(
            "--capacity",
            type=int,
            help="Maximum number of records held in memory"
        )
        parser.add_argument(
            "--headless",
            action="store_true",
            help="Run without the terminal viewer"
        )
        parser.add_argument(
            "--min-level",
            help="Initial minimum level shown by the viewer"
        )
        parser.add_argument(
            "--diagnostics-socket",
            help="Serve the read-only diagnostics API on this Unix socket"
        )

    def _apply_overrides(self) -> None:
        """Command line flags win over environment and config file."""
        if self.args.socket:
            self.config.server.socket_path = self.args.socket
        if self.args.capacity is not None:
            self.config.server.capacity = self.args.capacity
        if self.args.min_level:
            self.config.viewer.min_level = self.args.min_level
        if self.args.diagnostics_socket:
            self.config.diagnostics.enabled = True
            self.config.diagnostics.socket_path = self.args.diagnostics_socket

    def run(self) -> int:
        """Run the serve command."""
        self._apply_overrides()
        server = LogServer(self.config)

        try:
            server.start()
        except BindError as e:
            print(Colors.error(f"Cannot start log server: {e}"), file=sys.stderr)
            return EXIT_BIND_FAILURE

        try:
            if self.args.headless:
                print(Colors.info(f"Log server listening on {self.config.server.socket_path}"))
                signal.signal(signal.SIGTERM, lambda signum, frame: server.request_stop())
                server.wait()
            else:
                server.run_viewer()
        finally:
            server.stop()

        return 0
