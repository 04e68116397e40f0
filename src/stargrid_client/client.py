"""Stargrid client - public event surface.

Usage:
    async with StargridClient() as client:
        client.on_error(print)
        await client.on_block(lambda block: print(block.height))

        txs = await client.on_tx({"transfer": {"amount": match("100")}})
        async for tx in txs:
            print(tx.txhash)

Subscriptions live as long as the connection. There is no automatic
reconnection: after the connection closes, call connect() again and
resubscribe.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Iterable
from typing import Any

from .channels import ErrorSignal, Handler, Signal
from .config import ClientConfig
from .connection import Connection, ConnectionState
from .dispatcher import MessageDispatcher
from .errors import (
    HandlerError,
    NotConnected,
    ProtocolDecodeError,
    SubscriptionError,
)
from .filters import EventFilter
from .registry import SubscriptionRegistry, TxSubscription
from .transport import TransportFactory, create_websocket_transport
from .types import Block, CloseFrame

logger = logging.getLogger(__name__)

# Errors that are reported but do not end a session
NON_TERMINAL_ERRORS = (ProtocolDecodeError, SubscriptionError, HandlerError)


class StargridClient:
    """Client for a Stargrid event server."""

    def __init__(
        self,
        config: ClientConfig | None = None,
        transport_factory: TransportFactory | None = None,
    ):
        self.config = config or ClientConfig()

        self._errors = ErrorSignal("error")
        self._connected_signal: Signal[None] = Signal("connect", error_sink=self._errors)
        self._closed_signal: Signal[CloseFrame] = Signal("close", error_sink=self._errors)

        self._connection = Connection(
            self.config,
            transport_factory or create_websocket_transport,
            errors=self._errors,
            connected=self._connected_signal,
            closed=self._closed_signal,
        )
        self._registry: SubscriptionRegistry | None = None
        self._dispatcher: MessageDispatcher | None = None

    @property
    def state(self) -> ConnectionState:
        return self._connection.state

    @property
    def connected(self) -> bool:
        return self._connection.connected

    @property
    def registry(self) -> SubscriptionRegistry:
        """Registry of the current session."""
        if self._registry is None:
            raise NotConnected()
        return self._registry

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def connect(
        self,
        endpoint: str | None = None,
        timeout: float | None = None,
    ) -> StargridClient:
        """Connect to a Stargrid server, replacing any open session.

        Args:
            endpoint: WebSocket URL (default from config, ws://localhost:27043)
            timeout: Seconds to wait for the connection to open (default 5)

        Raises:
            ConnectionTimeout: If the connection did not open in time
        """
        endpoint = endpoint or self.config.endpoint
        timeout = self.config.connect_timeout if timeout is None else timeout

        # Installed before open() so connect handlers already see the new session
        registry = SubscriptionRegistry(self._connection, self._errors)
        dispatcher = MessageDispatcher(registry, self._errors)
        self._registry = registry
        self._dispatcher = dispatcher

        await self._connection.open(
            endpoint,
            timeout,
            on_message=dispatcher.dispatch,
            on_teardown=registry.close_all,
        )
        return self

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the connection. All subscriptions end."""
        await self._connection.close(code, reason)

    async def sync(self) -> CloseFrame:
        """Wait for the connection to end.

        Returns the close frame on closure, or raises the transport error that
        ended the connection, whichever is reported first. Decode errors,
        subscription rejections and handler failures do not end the wait.

        Raises:
            NotConnected: If no session is open
        """
        if not self._connection.connected:
            raise NotConnected()

        settled: asyncio.Future[CloseFrame] = asyncio.get_running_loop().create_future()

        def on_close(frame: CloseFrame) -> None:
            if not settled.done():
                settled.set_result(frame)

        def on_error(error: BaseException) -> None:
            if not settled.done() and not isinstance(error, NON_TERMINAL_ERRORS):
                settled.set_exception(error)

        detach_close = self._closed_signal.subscribe(on_close)
        detach_error = self._errors.subscribe(on_error)
        try:
            return await settled
        finally:
            detach_close()
            detach_error()

    async def __aenter__(self) -> StargridClient:
        return await self.connect()

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # =========================================================================
    # Handlers
    # =========================================================================

    async def on_connect(self, handler: Callable[[], Any]) -> Callable[[], None]:
        """Run `handler` once connected.

        Runs immediately when already connected; otherwise on the next
        successful connect. Returns a function that cancels a pending call.
        """
        if not self.connected:
            return self._connected_signal.once(lambda _: handler())

        try:
            result = handler()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            await self._errors.emit(HandlerError(self._connected_signal.name, e))
        return lambda: None

    def on_close(self, handler: Handler[CloseFrame]) -> Callable[[], None]:
        """Call `handler` with the close frame whenever a session ends."""
        return self._closed_signal.subscribe(handler)

    def on_error(self, handler: Handler[BaseException]) -> Callable[[], None]:
        """Call `handler` with every error reported by the client."""
        return self._errors.subscribe(handler)

    async def on_block(self, handler: Handler[Block]) -> Callable[[], None]:
        """Call `handler` for every block of the current session.

        Subscribes to blocks on first use in a session.

        Raises:
            NotConnected: If not connected
        """
        registry = self.registry
        await registry.subscribe_blocks()
        return registry.blocks.subscribe(handler)

    async def on_tx(self, filters: Iterable[EventFilter] | EventFilter) -> TxSubscription:
        """Subscribe to transactions matching any of `filters`.

        Raises:
            NotConnected: If not connected
        """
        return await self.subscribe_txs(filters)

    # =========================================================================
    # Subscriptions
    # =========================================================================

    async def subscribe_blocks(self) -> None:
        await self.registry.subscribe_blocks()

    async def subscribe_txs(self, filters: Iterable[EventFilter] | EventFilter) -> TxSubscription:
        return await self.registry.subscribe_txs(filters)
