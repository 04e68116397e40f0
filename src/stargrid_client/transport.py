"""Message transports for the Stargrid client.

The client core only needs a duplex pipe of text frames:
- open/close: session lifecycle
- send: one outbound text frame
- receive: async iterator of inbound text frames, ending when the session
  closes and raising on transport failure

Implementations:
- WebSocketTransport: the real thing, built on `websockets`
- MockTransport: in-memory, for tests and for embedding without I/O
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from typing import Any

from websockets.asyncio.client import ClientConnection, connect

from .config import ClientConfig
from .types import CloseFrame

logger = logging.getLogger(__name__)

# Builds a transport for an endpoint; StargridClient calls it once per connect()
TransportFactory = Callable[[str, ClientConfig], "Transport"]


class Transport(ABC):
    """Base class for client transports."""

    def __init__(self, endpoint: str):
        self.endpoint = endpoint
        self._close_frame: CloseFrame | None = None

    @property
    def close_frame(self) -> CloseFrame | None:
        """Close code and reason, once the session has ended."""
        return self._close_frame

    @abstractmethod
    async def open(self) -> None:
        """Open the session. Returns once the transport reports "open"."""
        ...

    @abstractmethod
    async def send(self, data: str) -> None:
        """Send one text frame."""
        ...

    @abstractmethod
    def receive(self) -> AsyncIterator[str]:
        """Yield inbound text frames until the session ends."""
        ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the session."""
        ...


class WebSocketTransport(Transport):
    """Transport over a WebSocket connection."""

    def __init__(self, endpoint: str, config: ClientConfig | None = None):
        super().__init__(endpoint)
        self.config = config or ClientConfig(endpoint=endpoint)
        self._ws: ClientConnection | None = None

    async def open(self) -> None:
        self._ws = await connect(
            self.endpoint,
            # Connection.open applies the connect deadline
            open_timeout=None,
            ping_interval=self.config.ping_interval,
            ping_timeout=self.config.ping_timeout,
            max_size=self.config.max_size,
            close_timeout=self.config.close_timeout,
        )
        logger.info(f"WebSocket connected to {self.endpoint}")

    async def send(self, data: str) -> None:
        if not self._ws:
            raise ConnectionError("WebSocket not connected")
        await self._ws.send(data)

    async def receive(self) -> AsyncIterator[str]:
        if not self._ws:
            raise ConnectionError("WebSocket not connected")

        ws = self._ws
        try:
            async for data in ws:
                yield data if isinstance(data, str) else data.decode("utf-8")
        finally:
            self._record_close(ws)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self._ws:
            await self._ws.close(code, reason)

    def _record_close(self, ws: ClientConnection) -> None:
        if ws.close_code is not None:
            self._close_frame = CloseFrame(code=ws.close_code, reason=ws.close_reason or "")


def create_websocket_transport(endpoint: str, config: ClientConfig) -> WebSocketTransport:
    """Default TransportFactory."""
    return WebSocketTransport(endpoint, config)


class MockTransport(Transport):
    """In-memory transport for testing.

    Records outbound frames and lets the test play the server.

    Usage:
        transport = MockTransport()
        client = StargridClient(transport_factory=transport.factory)
        await client.connect()

        transport.feed({"subscription": {"id": 1}})
        await transport.flush()  # wait until the client has dispatched it

        assert transport.sent_messages[0] == {"subscribe": "blocks"}
    """

    def __init__(self, endpoint: str = "mock://stargrid", hang_on_open: bool = False):
        super().__init__(endpoint)
        self.hang_on_open = hang_on_open
        self.is_open = False
        self.open_count = 0
        self._sent: list[str] = []
        self._inbound: asyncio.Queue[str | CloseFrame | BaseException] = asyncio.Queue()

    def factory(self, endpoint: str, config: ClientConfig) -> MockTransport:
        """TransportFactory that hands out this instance."""
        self.endpoint = endpoint
        return self

    @property
    def sent(self) -> list[str]:
        """Raw outbound frames, oldest first."""
        return self._sent.copy()

    @property
    def sent_messages(self) -> list[Any]:
        """Outbound frames decoded from JSON."""
        return [json.loads(s) for s in self._sent]

    # Server side ------------------------------------------------------------

    def feed(self, message: dict[str, Any] | str | bytes) -> None:
        """Queue an inbound frame (dicts are JSON-encoded)."""
        if isinstance(message, dict):
            message = json.dumps(message)
        elif isinstance(message, bytes):
            message = message.decode("utf-8")
        self._inbound.put_nowait(message)

    def fail(self, error: BaseException) -> None:
        """Make receive() raise `error` once queued frames are consumed."""
        self._inbound.put_nowait(error)

    def server_close(self, code: int = 1000, reason: str = "") -> None:
        """End the session from the server side."""
        self._inbound.put_nowait(CloseFrame(code=code, reason=reason))

    async def flush(self) -> None:
        """Wait until every queued frame has been fully handled by the reader."""
        await self._inbound.join()

    # Transport --------------------------------------------------------------

    async def open(self) -> None:
        self.open_count += 1
        if self.hang_on_open:
            # Handshake that never completes
            await asyncio.Event().wait()
        self._close_frame = None
        self.is_open = True

    async def send(self, data: str) -> None:
        if not self.is_open:
            raise ConnectionError("Mock transport not open")
        self._sent.append(data)

    async def receive(self) -> AsyncIterator[str]:
        while True:
            item = await self._inbound.get()
            try:
                if isinstance(item, CloseFrame):
                    self._close_frame = item
                    self.is_open = False
                    return
                if isinstance(item, BaseException):
                    self.is_open = False
                    raise item
                yield item
            finally:
                self._inbound.task_done()

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.is_open:
            self.server_close(code, reason)
        self.is_open = False
