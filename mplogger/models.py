"""
Pydantic models for mplogger.

This module defines the data models shared by the client, the server and
the viewer: the log level scale, the log record itself, connection
snapshots and the response models of the diagnostics API.
"""

import logging
from enum import Enum, IntEnum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

U32_MAX = 2**32 - 1
U64_MAX = 2**64 - 1


class LogLevel(IntEnum):
    """Ordered severity scale carried on the wire as a single byte."""

    TRACE = 0
    DEBUG = 1
    INFO = 2
    WARN = 3
    ERROR = 4

    @classmethod
    def parse(cls, value) -> "LogLevel":
        """
        Parse a level from a name, a number or another LogLevel.

        Args:
            value: e.g. "info", "WARNING", 3 or LogLevel.WARN

        Returns:
            LogLevel: The matching level

        Raises:
            ValueError: If the value does not name a level
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, int):
            return cls(value)
        name = str(value).strip().upper()
        if name == "WARNING":
            name = "WARN"
        if name == "CRITICAL":
            name = "ERROR"
        try:
            return cls[name]
        except KeyError:
            raise ValueError(f"Unknown log level: {value!r}") from None

    @classmethod
    def from_stdlib(cls, levelno: int) -> "LogLevel":
        """Map a stdlib logging level number onto the five-level scale."""
        if levelno >= logging.ERROR:
            return cls.ERROR
        if levelno >= logging.WARNING:
            return cls.WARN
        if levelno >= logging.INFO:
            return cls.INFO
        if levelno >= logging.DEBUG:
            return cls.DEBUG
        return cls.TRACE

    def to_stdlib(self) -> int:
        """Map back to a stdlib logging level number (TRACE becomes 5)."""
        return {
            LogLevel.TRACE: 5,
            LogLevel.DEBUG: logging.DEBUG,
            LogLevel.INFO: logging.INFO,
            LogLevel.WARN: logging.WARNING,
            LogLevel.ERROR: logging.ERROR,
        }[self]


class LogRecord(BaseModel):
    """Model representing one log event as framed on the wire and stored."""

    model_config = ConfigDict(frozen=True)

    process_id: int = Field(..., ge=0, le=U32_MAX, description="OS process id of the emitter")
    thread_id: int = Field(..., ge=0, le=U32_MAX, description="OS thread id within the process")
    level: LogLevel = Field(..., description="Severity of the event")
    target: str = Field(default="", description="Module or logger name that emitted the event")
    message: str = Field(default="", description="The log message")
    sequence: int = Field(default=0, ge=0, le=U64_MAX, description="Per-stream ordering key")
    # Stamped by the store, never framed
    arrival: int = Field(default=0, ge=0, description="Global arrival number at the store")
    received_at: float = Field(default=0.0, description="Wall-clock seconds when ingested")


class ConnectionState(str, Enum):
    """Lifecycle of one accepted client connection."""

    CONNECTED = "connected"
    DRAINING = "draining"
    CLOSED = "closed"


class ConnectionInfo(BaseModel):
    """Snapshot of a connection for diagnostics."""

    connection_id: int = Field(..., description="Server-local connection number")
    process_id: Optional[int] = Field(default=None, description="Process id learned from the first frame")
    state: ConnectionState = Field(..., description="Current connection state")
    frames: int = Field(default=0, description="Frames ingested on this connection")


class HealthResponse(BaseModel):
    """Model for health check responses."""

    status: str = Field(..., description="Health status of the server")
    service: str = Field(..., description="Name of the service")
    timestamp: str = Field(..., description="ISO format timestamp of the health check")
    connected_clients: int = Field(..., description="Number of live client connections")
    record_count: int = Field(..., description="Records currently held by the store")


class ProcessesResponse(BaseModel):
    """Model for the list of known processes."""

    processes: List[int] = Field(..., description="Process ids in first-seen order")


class ThreadsResponse(BaseModel):
    """Model for the list of threads of one process."""

    process_id: int = Field(..., description="Process the threads belong to")
    threads: List[int] = Field(..., description="Thread ids in first-seen order")


class LogsResponse(BaseModel):
    """Model for log window responses."""

    logs: List[LogRecord] = Field(..., description="Records in ascending order")
    count: int = Field(..., description="Number of records returned")


class StorageInfo(BaseModel):
    """Model describing the state of the store."""

    count: int = Field(..., description="Records currently held")
    capacity: int = Field(..., description="Maximum records held before eviction")
    evicted: int = Field(..., description="Records evicted since start")
    processes: int = Field(..., description="Known processes")
    is_full: bool = Field(..., description="Whether the store is at capacity")
    per_process: Dict[int, int] = Field(default_factory=dict, description="Record count per process")
