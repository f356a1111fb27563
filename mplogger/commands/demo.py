"""
Demo command: a test process that logs from many threads at once.
"""

import argparse
import logging
import threading
import time

from .. import client
from ..client import TRACE
from ..exceptions import InitError
from ..models import LogLevel
from ..utils.colors import Colors
from .base import BaseCommand

# One message per level, emitted in this order every round
ROUND = (
    (TRACE, "test trace"),
    (logging.DEBUG, "test debug"),
    (logging.INFO, "test info"),
    (logging.WARNING, "test warn"),
    (logging.ERROR, "test error"),
)


class DemoCommand(BaseCommand):
    """Command to emit sample records from several threads."""

    @staticmethod
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--socket", help="Unix socket path of the log server")
        parser.add_argument("--threads", type=int, default=10, help="Number of emitting threads")
        parser.add_argument("--rounds", type=int, default=5, help="Rounds of trace..error per thread")
        parser.add_argument("--interval", type=float, default=0.1, help="Seconds between records")
        parser.add_argument("--level", default="debug", help="Client-side level filter")
        parser.add_argument("--no-spawn", action="store_true", help="Fail instead of spawning a server")

    def _worker(self, rounds: int, interval: float) -> None:
        log = logging.getLogger(f"demo.{threading.current_thread().name}")
        for round_number in range(rounds):
            for level, message in ROUND:
                log.log(level, f"{message} ({round_number + 1}/{rounds})")
                time.sleep(interval)

    def run(self) -> int:
        """Run the demo command."""
        socket_path = self.args.socket or self.config.server.socket_path
        try:
            handler = client.init(
                socket_path,
                self.args.level,
                spawn=False if self.args.no_spawn else None,
                config=self.config.client,
            )
        except InitError as e:
            print(Colors.error(str(e)))
            return 1

        threads = [
            threading.Thread(target=self._worker, args=(self.args.rounds, self.args.interval), name=f"worker-{i}")
            for i in range(self.args.threads)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        emitter = handler.emitter
        dropped = emitter.dropped
        client.shutdown()

        shipped = [
            Colors.level(LogLevel.from_stdlib(level).name, LogLevel.from_stdlib(level))
            for level, _message in ROUND
            if LogLevel.from_stdlib(level) >= emitter.level_filter
        ]
        print(f"Sent {' '.join(shipped)} from {len(threads)} threads to {socket_path}")
        if dropped:
            print(Colors.warning(f"{dropped} records were dropped"))
        return 0
