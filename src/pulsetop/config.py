"""Configuration values for the pulsetop daemon and viewer."""

import os
from dataclasses import dataclass

ENV_PREFIX = "PULSETOP_"


def _env(name: str, default: str | None = None) -> str | None:
    return os.environ.get(ENV_PREFIX + name, default)


@dataclass(frozen=True)
class ServerConfig:
    """Where the daemon listens and how often it samples."""

    host: str = "0.0.0.0"
    port: int = 8080
    interval: float = 1.0  # seconds between ticks
    top_processes: int = 10

    @classmethod
    def from_env(cls) -> "ServerConfig":
        port = _env("PORT") or os.environ.get("PORT")
        interval = _env("INTERVAL")
        return cls(
            host=_env("HOST", cls.host),
            port=int(port) if port else cls.port,
            interval=float(interval) if interval else cls.interval,
        )


@dataclass(frozen=True)
class ClientConfig:
    """Endpoint and reconnect policy of a viewer connection."""

    url: str = "ws://localhost:8080"
    reconnect_delay: float = 5.0  # seconds
    max_attempts: int = 5
    open_timeout: float = 10.0

    @classmethod
    def from_env(cls) -> "ClientConfig":
        return cls(url=_env("URL", cls.url))


@dataclass(frozen=True)
class HistoryConfig:
    """Length of the rolling chart windows, in samples."""

    capacity: int = 30

    @classmethod
    def from_env(cls) -> "HistoryConfig":
        capacity = _env("HISTORY")
        return cls(capacity=int(capacity) if capacity else cls.capacity)


def log_level(default: str = "INFO") -> str:
    """Log level name from PULSETOP_LOG_LEVEL."""
    return (_env("LOG_LEVEL") or default).upper()
