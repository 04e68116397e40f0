"""Error taxonomy for the Stargrid client.

Every error raised or emitted by the client derives from StargridClientError,
except transport-level failures which are forwarded as raised by the transport.
"""

from __future__ import annotations

from typing import Any


class StargridClientError(Exception):
    """Base class for all client errors."""


class ConnectionTimeout(StargridClientError):
    """The transport did not report "open" within the connect deadline."""

    def __init__(self, endpoint: str, timeout: float):
        self.endpoint = endpoint
        self.timeout = timeout
        super().__init__(f"Connection to {endpoint} timed out after {timeout}s")


class NotConnected(StargridClientError):
    """An operation that needs an open session was called without one."""

    def __init__(self, message: str = "Not connected"):
        super().__init__(message)


class SubscriptionError(StargridClientError):
    """The server rejected a transaction subscription."""

    def __init__(self, id: int, message: str):
        self.id = id
        self.message = message
        super().__init__(f"Subscription {id} failed: {message}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SubscriptionError):
            return NotImplemented
        return self.id == other.id and self.message == other.message

    def __hash__(self) -> int:
        return hash((self.id, self.message))


class ProtocolDecodeError(StargridClientError):
    """An inbound payload could not be decoded."""

    def __init__(self, message: str, payload: Any = None):
        self.payload = payload
        super().__init__(message)


class HandlerError(StargridClientError):
    """A user-supplied handler raised while processing a signal."""

    def __init__(self, signal: str, error: BaseException):
        self.signal = signal
        self.error = error
        super().__init__(f"Handler for {signal!r} raised {type(error).__name__}: {error}")
        self.__cause__ = error
