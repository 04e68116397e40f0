"""Wire protocol for the Stargrid event stream.

Client -> Server control messages:
    {"subscribe": "blocks"}
    {"subscribe": {"txs": {"id": 1, "filters": [{"transfer": {"amount": {"match": "100"}}}]}}}

Server -> Client messages (exactly one top-level key):
    {"block": {"raw", "height", "hash", "chain_id", "time", "events"}}
    {"tx": {"id": 1, "tx": {"raw", "error"?, "height", "tx", "txhash", "events"}}}
    {"subscription": {"id": 1, "error"?: "..."}}

Anything else is an unknown control message and is ignored by the client.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import ProtocolDecodeError
from .filters import EventFilter, encode_event_filter
from .types import Block, Tx


class MessageKind(str, Enum):
    """Classification of inbound messages."""

    BLOCK = "block"
    TX = "tx"
    SUBSCRIPTION = "subscription"
    UNKNOWN = "unknown"


# =============================================================================
# Outbound
# =============================================================================


def subscribe_blocks_message() -> dict[str, Any]:
    return {"subscribe": "blocks"}


def subscribe_txs_message(subscription_id: int, filters: Iterable[EventFilter]) -> dict[str, Any]:
    """Build the control message subscribing `subscription_id` to filtered txs."""
    return {
        "subscribe": {
            "txs": {
                "id": subscription_id,
                "filters": [encode_event_filter(f) for f in filters],
            }
        }
    }


def encode(message: dict[str, Any]) -> str:
    return json.dumps(message, separators=(",", ":"))


# =============================================================================
# Inbound
# =============================================================================


class TxEnvelope(BaseModel):
    """`tx` message: the matched subscription id and the transaction."""

    model_config = ConfigDict(frozen=True)

    id: int
    tx: dict[str, Any]


class SubscriptionAck(BaseModel):
    """`subscription` message: acknowledgement or rejection of a subscribe."""

    model_config = ConfigDict(frozen=True)

    id: int
    error: str | None = None

    @property
    def ok(self) -> bool:
        return not self.error


def decode(raw: str | bytes) -> dict[str, Any]:
    """Parse one inbound frame into a JSON object.

    Raises:
        ProtocolDecodeError: If the frame is not valid JSON or not an object
    """
    try:
        msg = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolDecodeError(f"Invalid JSON from server: {e}", raw) from e
    if not isinstance(msg, dict):
        raise ProtocolDecodeError(
            f"Expected a JSON object from server, got {type(msg).__name__}", raw
        )
    return msg


def classify(msg: dict[str, Any]) -> MessageKind:
    if "block" in msg:
        return MessageKind.BLOCK
    if "tx" in msg:
        return MessageKind.TX
    if "subscription" in msg:
        return MessageKind.SUBSCRIPTION
    return MessageKind.UNKNOWN


def parse_block(msg: dict[str, Any]) -> Block:
    return _validate(Block, msg["block"], "block")


def parse_tx(msg: dict[str, Any]) -> Tx:
    envelope = _validate(TxEnvelope, msg["tx"], "tx")
    return _validate(Tx, {**envelope.tx, "subscription_id": envelope.id}, "tx")


def parse_subscription_ack(msg: dict[str, Any]) -> SubscriptionAck:
    return _validate(SubscriptionAck, msg["subscription"], "subscription")


def _validate(model: type[Any], data: Any, kind: str) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ProtocolDecodeError(f"Malformed {kind} message: {e}", data) from e
