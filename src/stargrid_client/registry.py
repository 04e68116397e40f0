"""Subscription registry.

One registry exists per connection session. It allocates subscription ids,
correlates subscribe requests with the server's acknowledgements, and routes
transactions to the stream of the subscription they matched.

Ids come from a counter starting at 1. Allocation and registration happen
before the first await in subscribe_txs(), so concurrent callers on the same
event loop can never observe the same id.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING

from .channels import ErrorSignal, Signal
from .errors import NotConnected, StargridClientError, SubscriptionError
from .filters import EventFilter
from .protocol import subscribe_blocks_message, subscribe_txs_message
from .types import Block, Tx

if TYPE_CHECKING:
    from .connection import Connection

logger = logging.getLogger(__name__)


class TxSubscription:
    """Handle for one transaction subscription.

    Iterate it to receive matching transactions. Transactions are buffered
    from the moment the subscription is registered, whether or not the server
    has acknowledged it yet. Iteration ends once the subscription is
    unsubscribed or its connection closes and the buffer is drained.

    A server rejection is reported on the client's error channel; the stream
    itself stays open until unsubscribed.
    """

    def __init__(
        self,
        subscription_id: int,
        filters: Iterable[EventFilter],
        registry: SubscriptionRegistry,
    ):
        self.id = subscription_id
        self.filters = tuple(filters)
        self.acknowledged = False
        self.error: StargridClientError | None = None

        self._registry = registry
        self._queue: asyncio.Queue[Tx | None] = asyncio.Queue()
        self._ack_event = asyncio.Event()
        self._closed = False

    def __repr__(self) -> str:
        state = "closed" if self._closed else "acked" if self.acknowledged else "pending"
        return f"<TxSubscription id={self.id} {state}>"

    @property
    def closed(self) -> bool:
        return self._closed

    def unsubscribe(self) -> None:
        """Stop routing transactions to this stream. Takes effect immediately."""
        self._registry.unsubscribe(self.id)

    async def wait_acknowledged(self) -> None:
        """Wait for the server's answer to this subscription.

        There is no timeout: a server that never answers blocks this forever.

        Raises:
            SubscriptionError: If the server rejected the subscription
            NotConnected: If the connection closed before an answer arrived
        """
        await self._ack_event.wait()
        if self.error is not None:
            raise self.error

    def drain(self) -> list[Tx]:
        """Take every buffered transaction without waiting."""
        items: list[Tx] = []
        while not self._queue.empty():
            tx = self._queue.get_nowait()
            if tx is None:
                # Keep the end-of-stream marker for iterators
                self._queue.put_nowait(None)
                break
            items.append(tx)
        return items

    def __aiter__(self) -> TxSubscription:
        return self

    async def __anext__(self) -> Tx:
        tx = await self._queue.get()
        if tx is None:
            self._queue.put_nowait(None)
            raise StopAsyncIteration
        return tx

    def _deliver(self, tx: Tx) -> None:
        if not self._closed:
            self._queue.put_nowait(tx)

    def _resolve(self, error: StargridClientError | None = None) -> None:
        if self._ack_event.is_set():
            return
        self.error = error
        self.acknowledged = error is None
        self._ack_event.set()

    def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)


class SubscriptionRegistry:
    """Subscriptions of one connection session."""

    def __init__(self, connection: Connection, errors: ErrorSignal):
        self._connection = connection
        self._errors = errors
        self._next_id = 1
        self._streams: dict[int, TxSubscription] = {}
        self._pending: dict[int, TxSubscription] = {}
        self._blocks_subscribed = False
        self._closed = False

        self.blocks: Signal[Block] = Signal("block", error_sink=errors)

    def __len__(self) -> int:
        return len(self._streams)

    def __contains__(self, subscription_id: object) -> bool:
        return subscription_id in self._streams

    @property
    def blocks_subscribed(self) -> bool:
        return self._blocks_subscribed

    @property
    def pending_ids(self) -> list[int]:
        """Ids still waiting for an acknowledgement."""
        return list(self._pending)

    def get(self, subscription_id: int) -> TxSubscription | None:
        return self._streams.get(subscription_id)

    def _require_connection(self) -> None:
        if self._closed or not self._connection.connected:
            raise NotConnected()

    # =========================================================================
    # Subscribe
    # =========================================================================

    async def subscribe_blocks(self) -> None:
        """Ask the server for the block stream. Sent at most once per session.

        Raises:
            NotConnected: If the session is not open
        """
        self._require_connection()
        if self._blocks_subscribed:
            return

        self._blocks_subscribed = True
        try:
            await self._connection.send(subscribe_blocks_message())
        except Exception:
            self._blocks_subscribed = False
            raise
        logger.debug("Subscribed to blocks")

    async def subscribe_txs(
        self, filters: Iterable[EventFilter] | EventFilter
    ) -> TxSubscription:
        """Register a transaction subscription and send the subscribe request.

        Returns as soon as the request is sent; the acknowledgement is handled
        asynchronously (see TxSubscription.wait_acknowledged).

        Raises:
            NotConnected: If the session is not open
            TypeError: If a filter holds something other than filter expressions
        """
        self._require_connection()

        filters = [filters] if isinstance(filters, Mapping) else list(filters)

        subscription_id = self._next_id
        self._next_id += 1
        message = subscribe_txs_message(subscription_id, filters)

        subscription = TxSubscription(subscription_id, filters, self)
        self._streams[subscription_id] = subscription
        self._pending[subscription_id] = subscription
        try:
            await self._connection.send(message)
        except Exception:
            self._discard(subscription_id)
            raise

        logger.debug(f"Requested tx subscription {subscription_id} ({len(filters)} filters)")
        return subscription

    def unsubscribe(self, subscription_id: int) -> None:
        """Detach a subscription locally. The protocol has no unsubscribe message."""
        if self._discard(subscription_id):
            logger.debug(f"Unsubscribed tx subscription {subscription_id}")

    def _discard(self, subscription_id: int) -> bool:
        self._pending.pop(subscription_id, None)
        subscription = self._streams.pop(subscription_id, None)
        if subscription is None:
            return False
        subscription._close()
        return True

    # =========================================================================
    # Inbound
    # =========================================================================

    def route_tx(self, tx: Tx) -> bool:
        """Hand a transaction to the stream registered under its id.

        Returns False when no such stream exists; the transaction is dropped.
        """
        subscription = self._streams.get(tx.subscription_id)
        if subscription is None:
            logger.debug(f"Dropping tx {tx.txhash} for unknown subscription {tx.subscription_id}")
            return False
        subscription._deliver(tx)
        return True

    async def resolve_ack(self, subscription_id: int, error: str | None = None) -> None:
        """Settle the pending subscribe request with this id.

        Each acknowledgement settles at most one request; duplicates and
        answers for unknown or unsubscribed ids are dropped.
        """
        subscription = self._pending.pop(subscription_id, None)
        if subscription is None:
            logger.debug(f"Dropping acknowledgement for unknown subscription {subscription_id}")
            return

        if not error:
            subscription._resolve()
            logger.debug(f"Tx subscription {subscription_id} acknowledged")
            return

        failure = SubscriptionError(subscription_id, error)
        subscription._resolve(failure)
        logger.warning(str(failure))
        await self._errors.emit(failure)

    # =========================================================================
    # Teardown
    # =========================================================================

    def close_all(self) -> None:
        """Tear down every subscription when the session ends."""
        self._closed = True

        for subscription in self._pending.values():
            subscription._resolve(
                NotConnected(
                    f"Connection closed before subscription {subscription.id} was acknowledged"
                )
            )
        self._pending.clear()

        for subscription in self._streams.values():
            subscription._close()
        self._streams.clear()

        self.blocks.clear()
