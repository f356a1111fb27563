"""
Read-only diagnostics API for a running mplogger server.

The API is a small FastAPI application served by uvicorn on a second Unix
socket next to the ingestion socket, so it stays local like everything
else. It only reads from the store and the acceptor.

    curl --unix-socket /tmp/mp-logger-socket.http http://localhost/api/processes
"""

import logging
import os
import threading
from datetime import datetime
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

from . import __version__
from .models import (
    HealthResponse,
    LogLevel,
    LogsResponse,
    ProcessesResponse,
    StorageInfo,
    ThreadsResponse,
)
from .server import ConnectionAcceptor
from .store import AggregationStore

logger = logging.getLogger(__name__)

MAX_WINDOW = 1000


def create_app(store: AggregationStore, acceptor: Optional[ConnectionAcceptor] = None) -> FastAPI:
    """
    Create and configure the diagnostics application.

    Args:
        store: The store to expose
        acceptor: The acceptor whose connections are reported, if any

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title="mplogger diagnostics",
        description="Read-only view of a running multi-process log server",
        version=__version__,
    )

    _add_routes(app, store, acceptor)

    return app


def _add_routes(app: FastAPI, store: AggregationStore, acceptor: Optional[ConnectionAcceptor]) -> None:
    """Add all routes to the FastAPI application."""

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint."""
        return HealthResponse(
            status="healthy",
            service="mplogger",
            timestamp=datetime.now().isoformat(),
            connected_clients=acceptor.connection_count() if acceptor else 0,
            record_count=len(store),
        )

    @app.get("/api/processes", response_model=ProcessesResponse)
    async def get_processes():
        """Known processes in first-seen order."""
        return ProcessesResponse(processes=store.snapshot_processes())

    @app.get("/api/processes/{process_id}/threads", response_model=ThreadsResponse)
    async def get_threads(process_id: int):
        """Threads of one process in first-seen order."""
        if process_id not in store.snapshot_processes():
            raise HTTPException(status_code=404, detail=f"Unknown process: {process_id}")
        return ThreadsResponse(process_id=process_id, threads=store.snapshot_threads(process_id))

    @app.get("/api/logs", response_model=LogsResponse)
    async def get_logs(process_id: int, thread_id: int, level: str = "trace", offset: int = 0, count: int = 100):
        """A window of records for one stream, newest last."""
        try:
            level_filter = LogLevel.parse(level)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        if offset < 0 or count < 0:
            raise HTTPException(status_code=400, detail="offset and count must not be negative")

        logs = store.read_window(process_id, thread_id, level_filter, offset, min(count, MAX_WINDOW))
        return LogsResponse(logs=logs, count=len(logs))

    @app.get("/api/storage/info", response_model=StorageInfo)
    async def get_storage_info():
        """Get information about the store."""
        return store.stats()

    @app.get("/api/connections")
    async def get_connections():
        """Get information about client connections."""
        connections = acceptor.connections() if acceptor else []
        return JSONResponse(content=[c.model_dump(mode="json") for c in connections])


class DiagnosticsServer:
    """
    Run the diagnostics app with uvicorn on a background thread.

    uvicorn's own log configuration is disabled so its loggers propagate
    to the server's handlers instead of writing over the viewer.
    """

    def __init__(self, app: FastAPI, socket_path: str, log_level: str = "warning"):
        self.socket_path = socket_path
        self._server = uvicorn.Server(uvicorn.Config(
            app,
            uds=socket_path,
            log_level=log_level,
            log_config=None,
            access_log=False,
        ))
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if os.path.exists(self.socket_path):
            os.unlink(self.socket_path)
        self._thread = threading.Thread(target=self._server.run, name="mplogger-diagnostics", daemon=True)
        self._thread.start()
        logger.info(f"Diagnostics API on {self.socket_path}")

    def stop(self, timeout: float = 2.0) -> None:
        """Ask uvicorn to exit and wait for it. Safe to call twice."""
        self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        if os.path.exists(self.socket_path):
            os.unlink(self.socket_path)
