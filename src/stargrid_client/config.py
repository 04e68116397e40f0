"""Client configuration.

Defaults point at a local Stargrid server. Any field can be overridden through
the environment with ClientConfig.from_env().
"""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_ENDPOINT = "ws://localhost:27043"
DEFAULT_CONNECT_TIMEOUT = 5.0

ENV_ENDPOINT = "STARGRID_ENDPOINT"
ENV_CONNECT_TIMEOUT = "STARGRID_CONNECT_TIMEOUT"
ENV_PING_INTERVAL = "STARGRID_PING_INTERVAL"


@dataclass
class ClientConfig:
    """Configuration for StargridClient and its WebSocket transport."""

    endpoint: str = DEFAULT_ENDPOINT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT

    # WebSocket keep-alive (None disables pings)
    ping_interval: float | None = 30.0
    ping_timeout: float | None = 10.0

    # Largest inbound frame accepted, in bytes (None for unlimited)
    max_size: int | None = 2**24
    close_timeout: float = 5.0

    @classmethod
    def from_env(cls) -> ClientConfig:
        """Build a config from defaults overlaid with STARGRID_* variables."""
        config = cls()
        if endpoint := os.getenv(ENV_ENDPOINT):
            config.endpoint = endpoint
        if timeout := os.getenv(ENV_CONNECT_TIMEOUT):
            config.connect_timeout = _parse_seconds(ENV_CONNECT_TIMEOUT, timeout)
        if interval := os.getenv(ENV_PING_INTERVAL):
            config.ping_interval = _parse_seconds(ENV_PING_INTERVAL, interval)
        return config


def _parse_seconds(name: str, value: str) -> float:
    try:
        seconds = float(value)
    except ValueError as e:
        raise ValueError(f"{name} must be a number of seconds, got {value!r}") from e
    if seconds <= 0:
        raise ValueError(f"{name} must be positive, got {value!r}")
    return seconds
