"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from typing import Any

import pytest

from stargrid_client import ClientConfig, MockTransport, StargridClient


@pytest.fixture
def transport() -> MockTransport:
    """In-memory transport playing the server."""
    return MockTransport()


@pytest.fixture
def client(transport: MockTransport) -> StargridClient:
    """Client wired to the mock transport (not yet connected)."""
    return StargridClient(ClientConfig(endpoint="mock://stargrid"), transport.factory)


@pytest.fixture
def make_event():
    """Build a wire-form chain event."""

    def _make(name: str = "transfer", **attributes: Any) -> dict[str, Any]:
        return {
            "name": name,
            "attributes": {
                key: {"value": str(value), "indexed": True} for key, value in attributes.items()
            },
        }

    return _make


@pytest.fixture
def make_block(make_event):
    """Build a server `block` message."""

    def _make(height: int | str = 100, **overrides: Any) -> dict[str, Any]:
        block = {
            "raw": "YmxvY2s=",
            "height": str(height),
            "hash": f"HASH{height}",
            "chain_id": "stargrid-1",
            "time": "2024-01-15T10:30:00Z",
            "events": [make_event("coin_spent", amount="5uatom")],
        }
        block.update(overrides)
        return {"block": block}

    return _make


@pytest.fixture
def make_tx(make_event):
    """Build a server `tx` message for a subscription id."""

    def _make(subscription_id: int, height: int | str = 100, **overrides: Any) -> dict[str, Any]:
        tx = {
            "raw": "dHg=",
            "height": str(height),
            "tx": "CpIBCo8B",
            "txhash": f"TX{subscription_id}H{height}",
            "events": [make_event("transfer", amount="100", recipient="addr1")],
        }
        tx.update(overrides)
        return {"tx": {"id": subscription_id, "tx": tx}}

    return _make
