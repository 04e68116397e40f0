"""Inbound message dispatch.

Every frame the transport delivers passes through MessageDispatcher.dispatch(),
one at a time and in delivery order. Messages are classified by their single
top-level key:
- block: decoded into a Block and broadcast to block handlers
- tx: decoded into a Tx and routed to the subscription it matched
- subscription: settles the pending subscribe request with the same id
- anything else: ignored, so newer servers can add control messages

Decode failures are reported on the error channel and never stop dispatch.
"""

from __future__ import annotations

import logging

from . import protocol
from .channels import ErrorSignal
from .errors import ProtocolDecodeError
from .protocol import MessageKind
from .registry import SubscriptionRegistry

logger = logging.getLogger(__name__)


class MessageDispatcher:
    """Routes decoded server messages for one session."""

    def __init__(self, registry: SubscriptionRegistry, errors: ErrorSignal):
        self._registry = registry
        self._errors = errors
        self.counts: dict[MessageKind, int] = {kind: 0 for kind in MessageKind}

    async def dispatch(self, raw: str | bytes) -> None:
        try:
            msg = protocol.decode(raw)
            kind = protocol.classify(msg)
            self.counts[kind] += 1

            if kind == MessageKind.BLOCK:
                await self._registry.blocks.emit(protocol.parse_block(msg))

            elif kind == MessageKind.TX:
                self._registry.route_tx(protocol.parse_tx(msg))

            elif kind == MessageKind.SUBSCRIPTION:
                ack = protocol.parse_subscription_ack(msg)
                await self._registry.resolve_ack(ack.id, ack.error)

            else:
                logger.debug(f"Ignoring unknown message with keys {sorted(msg)}")

        except ProtocolDecodeError as e:
            logger.warning(f"Dropping undecodable message: {e}")
            await self._errors.emit(e)
