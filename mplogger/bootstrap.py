"""
Server bootstrap for clients.

If nothing answers on the socket path, a headless server process is
spawned in its own session and the connection is retried with backoff.
"""

import logging
import os
import socket
import subprocess
import sys
import time
from typing import List, Optional

from .exceptions import ConnectError

logger = logging.getLogger(__name__)


def connect(socket_path: str, timeout: Optional[float] = None) -> socket.socket:
    """
    Connect to a log server.

    Args:
        socket_path: Filesystem path of the server socket
        timeout: Socket timeout applied to the connected socket

    Returns:
        socket.socket: The connected socket

    Raises:
        ConnectError: If the socket is missing or refuses the connection
    """
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        sock.settimeout(timeout)
        sock.connect(socket_path)
    except OSError as e:
        sock.close()
        raise ConnectError(f"Cannot connect to {socket_path}: {e}") from e
    return sock


def server_command(socket_path: str) -> List[str]:
    """Command line that starts a headless server on socket_path."""
    return [sys.executable, "-m", "mplogger", "serve", "--headless", "--socket", socket_path]


def spawn_server(command: List[str]) -> subprocess.Popen:
    """
    Start a server process detached from the caller's session.

    Raises:
        ConnectError: If the process cannot be started
    """
    logger.info(f"Spawning log server: {' '.join(command)}")
    try:
        return subprocess.Popen(
            command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
            close_fds=True,
        )
    except OSError as e:
        raise ConnectError(f"Failed to spawn log server: {e}") from e


def ensure_server(
    socket_path: str,
    spawn: bool = True,
    command: Optional[List[str]] = None,
    retries: int = 10,
    backoff: float = 0.1,
    timeout: Optional[float] = None,
) -> socket.socket:
    """
    Return a socket connected to a log server, spawning one if needed.

    Args:
        socket_path: Filesystem path of the server socket
        spawn: Whether to start a server when none answers
        command: Server command line, defaults to server_command()
        retries: Connection attempts after spawning
        backoff: Initial delay between attempts, doubled each time
        timeout: Socket timeout applied to the connected socket

    Returns:
        socket.socket: The connected socket

    Raises:
        ConnectError: If no server can be reached
    """
    try:
        return connect(socket_path, timeout)
    except ConnectError:
        if not spawn:
            raise

    if os.path.exists(socket_path):
        logger.debug(f"Socket {socket_path} exists but does not answer")

    process = spawn_server(command or server_command(socket_path))

    delay = backoff
    last_error: Optional[ConnectError] = None
    for attempt in range(1, retries + 1):
        time.sleep(delay)
        try:
            return connect(socket_path, timeout)
        except ConnectError as e:
            last_error = e
            logger.debug(f"Server not ready (attempt {attempt}/{retries})")
        # Checked after connecting: a server that lost a spawn race exits while the winner serves
        if process.poll() is not None:
            raise ConnectError(f"Log server exited with code {process.returncode}: {last_error}")
        delay = min(delay * 2, 2.0)

    raise ConnectError(f"Log server did not come up on {socket_path}: {last_error}")
