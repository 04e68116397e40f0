"""Stargrid client - subscribe to blockchain block and transaction events.

Connects to a Stargrid server over WebSocket and turns its push stream into
typed, per-subscription event channels:
- StargridClient: connect, on_block, on_tx, on_error, sync
- filters: match / not_ / all_of / any_of / one_of expression trees
- types: Block, Tx, Event models delivered to handlers
"""

from .client import StargridClient
from .config import ClientConfig
from .connection import ConnectionState
from .errors import (
    ConnectionTimeout,
    HandlerError,
    NotConnected,
    ProtocolDecodeError,
    StargridClientError,
    SubscriptionError,
)
from .filters import (
    AllOf,
    AnyOf,
    EventFilter,
    FilterExpr,
    Match,
    Not,
    OneOf,
    all_of,
    any_of,
    match,
    not_,
    one_of,
)
from .registry import TxSubscription
from .transport import MockTransport, Transport, WebSocketTransport
from .types import Block, CloseFrame, Event, EventAttribute, Tx, TxError

__all__ = [
    # Client
    "StargridClient",
    "ClientConfig",
    "ConnectionState",
    "TxSubscription",
    # Filters
    "FilterExpr",
    "EventFilter",
    "Match",
    "Not",
    "AllOf",
    "AnyOf",
    "OneOf",
    "match",
    "not_",
    "all_of",
    "any_of",
    "one_of",
    # Types
    "Block",
    "Tx",
    "TxError",
    "Event",
    "EventAttribute",
    "CloseFrame",
    # Transports
    "Transport",
    "WebSocketTransport",
    "MockTransport",
    # Errors
    "StargridClientError",
    "ConnectionTimeout",
    "NotConnected",
    "SubscriptionError",
    "ProtocolDecodeError",
    "HandlerError",
]
