"""Tests for the assembled server: store, acceptor, own logs and diagnostics."""

import logging
import os

import httpx
import pytest

from conftest import make_record, raw_client, wait_for
from mplogger.app import LogServer
from mplogger.config import Config
from mplogger.models import U32_MAX, LogLevel
from mplogger.protocol import encode_frame
from mplogger.state import ScrollSpeed
from mplogger.utils.logging import StoreLogHandler


@pytest.fixture
def config(socket_dir):
    config = Config()
    config.server.socket_path = os.path.join(socket_dir, "sock")
    config.server.capacity = 100
    config.server.shutdown_timeout = 1.0
    config.diagnostics.socket_path = os.path.join(socket_dir, "http")
    config.logging.feed_store = False
    return config


@pytest.fixture
def server(config):
    server = LogServer(config)
    yield server
    server.stop()


class TestLogServer:
    """Lifecycle"""

    def test_accepts_clients(self, server, config):
        server.start()
        client = raw_client(config.server.socket_path)
        try:
            client.sendall(encode_frame(make_record(42)))
            assert wait_for(lambda: server.store.count_matching(42, 1) == 1)
        finally:
            client.close()

    def test_stop_is_idempotent(self, server, config):
        server.start()
        server.stop()
        server.stop()
        assert not os.path.exists(config.server.socket_path)

    def test_wait_returns_after_request_stop(self, server):
        server.start()
        server.request_stop()
        server.wait()

    def test_initial_viewer_state(self, server, config):
        config.viewer.default_speed = 4
        config.viewer.min_level = "warn"
        state = server.initial_viewer_state()
        assert state.scroll_speed is ScrollSpeed.FOUR
        assert state.min_level_filter is LogLevel.WARN

    def test_own_logs_fed_into_store(self, server, config):
        config.logging.feed_store = True
        server.start()
        logging.getLogger("mplogger.selftest").warning("visible in the viewer")
        server.stop()

        pid = os.getpid() & U32_MAX
        records = []
        for tid in server.store.snapshot_threads(pid):
            records.extend(server.store.read_window(pid, tid, LogLevel.TRACE, 0, 100))
        assert "visible in the viewer" in [r.message for r in records]
        assert not any(isinstance(h, StoreLogHandler) for h in logging.getLogger().handlers)


class TestStoreLogHandler:
    """Server logs as records"""

    def test_sequences_increase(self, store):
        handler = StoreLogHandler(store, level=logging.DEBUG)
        log = logging.getLogger("mplogger.handlertest")
        log.addHandler(handler)
        log.setLevel(logging.DEBUG)
        try:
            log.debug("one")
            log.error("two")
        finally:
            log.removeHandler(handler)

        pid = os.getpid() & U32_MAX
        tid = store.snapshot_threads(pid)[0]
        window = store.read_window(pid, tid)
        assert [(r.message, r.level, r.sequence) for r in window] == [
            ("one", LogLevel.DEBUG, 0),
            ("two", LogLevel.ERROR, 1),
        ]
        assert window[0].target == "mplogger.handlertest"


class TestDiagnostics:
    """Diagnostics API over its Unix socket"""

    def test_health_over_unix_socket(self, server, config):
        config.diagnostics.enabled = True
        server.start()

        client = httpx.Client(transport=httpx.HTTPTransport(uds=config.diagnostics.socket_path))

        def health():
            try:
                return client.get("http://mplogger/health").json()
            except httpx.TransportError:
                return None

        try:
            body = wait_for(health, timeout=10.0)
            assert body["status"] == "healthy"
            assert body["service"] == "mplogger"
        finally:
            client.close()

        server.stop()
        assert not os.path.exists(config.diagnostics.socket_path)
