"""
Configuration management for mplogger.

Settings are grouped in small dataclasses and assembled by Config. Values
come from MPLOG_* environment variables, optionally overlaid by a YAML
file, and finally by command line flags.
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_SOCKET_PATH = "/tmp/mp-logger-socket"


@dataclass
class ServerConfig:
    """Configuration for the aggregation server."""

    socket_path: str = DEFAULT_SOCKET_PATH
    capacity: int = 100_000
    max_field_length: int = 1024 * 1024  # 1MB per target/message
    accept_backlog: int = 64
    shutdown_timeout: float = 2.0


@dataclass
class ClientConfig:
    """Configuration for the client emitter."""

    level_filter: str = "trace"
    send_timeout: float = 0.5
    reconnect_interval: float = 1.0
    spawn_server: bool = True
    spawn_retries: int = 10
    spawn_backoff: float = 0.1


@dataclass
class ViewerConfig:
    """Configuration for the terminal viewer."""

    tick_interval: float = 0.1
    default_speed: int = 1
    min_level: str = "trace"


@dataclass
class DiagnosticsConfig:
    """Configuration for the read-only diagnostics API."""

    enabled: bool = False
    socket_path: str = DEFAULT_SOCKET_PATH + ".http"
    log_level: str = "warning"


@dataclass
class LoggingConfig:
    """Configuration for the server's own logging."""

    level: str = "INFO"
    log_file: Optional[str] = None
    feed_store: bool = True


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() in ("1", "true", "yes", "on")


def _env_optional(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    return value if value else default


class Config:
    """Main configuration class that loads settings from environment variables."""

    def __init__(self):
        self.server = self._load_server_config()
        self.client = self._load_client_config()
        self.viewer = self._load_viewer_config()
        self.diagnostics = self._load_diagnostics_config()
        self.logging = self._load_logging_config()

    def _load_server_config(self) -> ServerConfig:
        """Load server configuration from environment variables."""
        return ServerConfig(
            socket_path=os.getenv("MPLOG_SOCKET", DEFAULT_SOCKET_PATH),
            capacity=int(os.getenv("MPLOG_CAPACITY", "100000")),
            max_field_length=int(os.getenv("MPLOG_MAX_FIELD_LENGTH", str(1024 * 1024))),
            accept_backlog=int(os.getenv("MPLOG_ACCEPT_BACKLOG", "64")),
            shutdown_timeout=float(os.getenv("MPLOG_SHUTDOWN_TIMEOUT", "2.0")),
        )

    def _load_client_config(self) -> ClientConfig:
        """Load client configuration from environment variables."""
        return ClientConfig(
            level_filter=os.getenv("MPLOG_LEVEL_FILTER", "trace"),
            send_timeout=float(os.getenv("MPLOG_SEND_TIMEOUT", "0.5")),
            reconnect_interval=float(os.getenv("MPLOG_RECONNECT_INTERVAL", "1.0")),
            spawn_server=_env_bool("MPLOG_SPAWN_SERVER", True),
            spawn_retries=int(os.getenv("MPLOG_SPAWN_RETRIES", "10")),
            spawn_backoff=float(os.getenv("MPLOG_SPAWN_BACKOFF", "0.1")),
        )

    def _load_viewer_config(self) -> ViewerConfig:
        """Load viewer configuration from environment variables."""
        return ViewerConfig(
            tick_interval=float(os.getenv("MPLOG_TICK_INTERVAL", "0.1")),
            default_speed=int(os.getenv("MPLOG_SCROLL_SPEED", "1")),
            min_level=os.getenv("MPLOG_MIN_LEVEL", "trace"),
        )

    def _load_diagnostics_config(self) -> DiagnosticsConfig:
        """Load diagnostics API configuration from environment variables."""
        return DiagnosticsConfig(
            enabled=_env_bool("MPLOG_DIAGNOSTICS", False),
            socket_path=os.getenv("MPLOG_DIAGNOSTICS_SOCKET", DEFAULT_SOCKET_PATH + ".http"),
            log_level=os.getenv("MPLOG_DIAGNOSTICS_LOG_LEVEL", "warning").lower(),
        )

    def _load_logging_config(self) -> LoggingConfig:
        """Load logging configuration from environment variables."""
        return LoggingConfig(
            level=os.getenv("MPLOG_LOG_LEVEL", "INFO").upper(),
            log_file=_env_optional("MPLOG_LOG_FILE", None),
            feed_store=_env_bool("MPLOG_FEED_STORE", True),
        )

    def apply(self, data: Dict[str, Any]) -> None:
        """
        Overlay values from a nested mapping onto the current settings.

        Unknown sections and keys are ignored with a warning.

        Args:
            data: Mapping of section name to a mapping of field values,
                  e.g. {"server": {"capacity": 5000}}
        """
        for section_name, values in (data or {}).items():
            section = getattr(self, section_name, None)
            if section is None or not isinstance(values, dict):
                logger.warning(f"Ignoring unknown config section: {section_name}")
                continue
            known = {f.name for f in fields(section)}
            for key, value in values.items():
                if key not in known:
                    logger.warning(f"Ignoring unknown config key: {section_name}.{key}")
                    continue
                setattr(section, key, value)


def load_config(config_file: Optional[str] = None) -> Config:
    """
    Load configuration from the environment and an optional YAML file.

    Args:
        config_file: Path to a YAML file; falls back to MPLOG_CONFIG

    Returns:
        Config: The assembled configuration
    """
    config = Config()

    path = config_file or os.getenv("MPLOG_CONFIG")
    if not path:
        return config

    config_path = Path(path)
    if not config_path.exists():
        logger.warning(f"Config file not found: {config_path}")
        return config

    try:
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.warning(f"Failed to load config file {config_path}: {e}")
        return config

    if data is not None and not isinstance(data, dict):
        logger.warning(f"Config file {config_path} must contain a mapping")
        return config

    config.apply(data)
    return config
