"""Domain types delivered to client callers.

Blocks and transactions are decoded from server payloads once and never
mutated afterwards.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class EventAttribute(BaseModel):
    """A single attribute of a chain event."""

    model_config = ConfigDict(frozen=True)

    value: str
    indexed: bool = False


class Event(BaseModel):
    """An event emitted by a block or transaction.

    Wire form:
        {"name": "transfer", "attributes": {"amount": {"value": "100", "indexed": true}}}
    """

    model_config = ConfigDict(frozen=True)

    name: str
    attributes: dict[str, EventAttribute] = Field(default_factory=dict)

    @property
    def type(self) -> str:
        """Alias for `name`."""
        return self.name

    @property
    def indexes(self) -> list[str]:
        """Names of attributes indexed by the chain."""
        return [key for key, attr in self.attributes.items() if attr.indexed]

    def values(self) -> dict[str, str]:
        """Attribute values without index flags."""
        return {key: attr.value for key, attr in self.attributes.items()}

    def get(self, key: str, default: str | None = None) -> str | None:
        attr = self.attributes.get(key)
        return attr.value if attr is not None else default


class TxError(BaseModel):
    """Execution error reported for a failed transaction."""

    model_config = ConfigDict(frozen=True)

    code: int
    codespace: str = ""
    message: str = ""


class Block(BaseModel):
    """A committed block."""

    model_config = ConfigDict(frozen=True)

    raw: str
    height: int = Field(ge=0, lt=2**64)
    hash: str
    chain_id: str
    time: datetime
    events: list[Event] = Field(default_factory=list)


class Tx(BaseModel):
    """A transaction matched by a subscription."""

    model_config = ConfigDict(frozen=True)

    subscription_id: int
    raw: str
    error: TxError | None = None
    height: int = Field(ge=0, lt=2**64)
    tx: str  # Raw transaction bytes as sent by the server
    txhash: str
    events: list[Event] = Field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.error is not None


class CloseFrame(BaseModel):
    """Terminal close code and reason of a session."""

    model_config = ConfigDict(frozen=True)

    code: int
    reason: str = ""
