"""Shared fixtures for the mplogger tests."""

import os
import shutil
import socket
import tempfile
import time

import pytest

from mplogger.models import LogLevel, LogRecord
from mplogger.server import ConnectionAcceptor
from mplogger.store import AggregationStore


def make_record(process_id=10, thread_id=1, level=LogLevel.INFO, message="hello", target="test", sequence=0):
    return LogRecord(
        process_id=process_id,
        thread_id=thread_id,
        level=level,
        target=target,
        message=message,
        sequence=sequence,
    )


def wait_for(predicate, timeout=5.0, interval=0.01):
    """Poll predicate until it returns something truthy or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        result = predicate()
        if result:
            return result
        time.sleep(interval)
    return predicate()


@pytest.fixture
def socket_dir():
    # AF_UNIX paths are limited to ~100 bytes, so stay directly under /tmp
    path = tempfile.mkdtemp(prefix="mplog-", dir="/tmp")
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def socket_path(socket_dir):
    return os.path.join(socket_dir, "sock")


@pytest.fixture
def store():
    return AggregationStore(capacity=1000)


@pytest.fixture
def acceptor(store, socket_path):
    acceptor = ConnectionAcceptor(store, socket_path, shutdown_timeout=1.0)
    acceptor.start()
    yield acceptor
    acceptor.shutdown()


def raw_client(path):
    """A plain client socket, for sending hand-built frames."""
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.settimeout(5.0)
    sock.connect(path)
    return sock


def closed_by_server(sock):
    try:
        return sock.recv(1) == b""
    except ConnectionResetError:
        return True
