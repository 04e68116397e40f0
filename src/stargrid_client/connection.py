"""Connection lifecycle for the Stargrid client.

Owns the transport handle and the read loop of the current session:
- open(): build a transport, wait for "open" under a deadline, start reading
- send(): encode and send a control message (CONNECTED only)
- close(): close the transport and wait for the session to finalize

Every session ends exactly once: state goes back to DISCONNECTED, the
session teardown hook runs, then the closed signal fires with the close frame.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from .channels import ErrorSignal, Signal
from .config import ClientConfig
from .errors import ConnectionTimeout, NotConnected
from .protocol import encode
from .transport import Transport, TransportFactory
from .types import CloseFrame

logger = logging.getLogger(__name__)

# Close code reported when the transport ended without a close handshake
ABNORMAL_CLOSURE = 1006

MessageHandler = Callable[[str], Awaitable[None]]
TeardownHook = Callable[[], None]


class ConnectionState(str, Enum):
    """Connection state machine."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class Connection:
    """A single client's transport session, replaced on every open()."""

    def __init__(
        self,
        config: ClientConfig,
        transport_factory: TransportFactory,
        *,
        errors: ErrorSignal,
        connected: Signal[None],
        closed: Signal[CloseFrame],
    ):
        self.config = config
        self._transport_factory = transport_factory
        self._errors = errors
        self._connected_signal = connected
        self._closed_signal = closed

        self._state = ConnectionState.DISCONNECTED
        self._transport: Transport | None = None
        self._reader_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def endpoint(self) -> str | None:
        return self._transport.endpoint if self._transport else None

    async def open(
        self,
        endpoint: str,
        timeout: float,
        *,
        on_message: MessageHandler,
        on_teardown: TeardownHook,
    ) -> None:
        """Open a new session, closing the current one first.

        Raises:
            ConnectionTimeout: If the transport is not open after `timeout` seconds
        """
        if self._transport is not None:
            logger.info(f"Closing session with {self._transport.endpoint} before reconnecting")
            await self.close()

        transport = self._transport_factory(endpoint, self.config)
        self._transport = transport
        self._state = ConnectionState.CONNECTING

        try:
            await asyncio.wait_for(transport.open(), timeout=timeout)
        except TimeoutError:
            self._detach(transport)
            logger.warning(f"Connection to {endpoint} timed out after {timeout}s")
            await self._abandon(transport)
            raise ConnectionTimeout(endpoint, timeout) from None
        except Exception as e:
            self._detach(transport)
            logger.warning(f"Connection to {endpoint} failed: {e}")
            await self._errors.emit(e)
            raise

        self._state = ConnectionState.CONNECTED
        self._reader_task = asyncio.create_task(
            self._read_loop(transport, on_message, on_teardown),
            name=f"stargrid-reader:{endpoint}",
        )
        logger.info(f"Connected to {endpoint}")
        await self._connected_signal.emit(None)

    async def _abandon(self, transport: Transport) -> None:
        try:
            await transport.close()
        except Exception as e:
            logger.debug(f"Error closing abandoned transport for {transport.endpoint}: {e}")

    async def send(self, payload: dict[str, Any]) -> None:
        """Send a control message on the open session.

        Raises:
            NotConnected: If no session is open
        """
        transport = self._transport
        if not self.connected or transport is None:
            raise NotConnected()
        await transport.send(encode(payload))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the session and wait until it has been finalized."""
        transport, task = self._transport, self._reader_task
        if transport is None:
            return

        await transport.close(code, reason)
        # A handler running on the reader task may call close(); it cannot wait on itself
        if task is not None and task is not asyncio.current_task():
            await task

    async def _read_loop(
        self,
        transport: Transport,
        on_message: MessageHandler,
        on_teardown: TeardownHook,
    ) -> None:
        """Feed inbound frames to `on_message` in delivery order."""
        try:
            async for raw in transport.receive():
                await on_message(raw)
        except Exception as e:
            logger.warning(f"Transport error on {transport.endpoint}: {e}")
            await self._errors.emit(e)
        finally:
            await self._finalize(transport, on_teardown)

    async def _finalize(self, transport: Transport, on_teardown: TeardownHook) -> None:
        self._detach(transport)
        on_teardown()

        frame = transport.close_frame or CloseFrame(code=ABNORMAL_CLOSURE)
        logger.info(f"Session with {transport.endpoint} closed ({frame.code} {frame.reason})")
        await self._closed_signal.emit(frame)

    def _detach(self, transport: Transport) -> None:
        # A stale session must not touch the state of its replacement
        if self._transport is not transport:
            return
        self._transport = None
        self._reader_task = None
        self._state = ConnectionState.DISCONNECTED
