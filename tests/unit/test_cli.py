"""Unit tests for the stargrid-client CLI."""

from __future__ import annotations

import json

import click
import pytest
from click.testing import CliRunner

from stargrid_client import MockTransport, StargridClient, cli
from stargrid_client.cli import build_event_filters, main, parse_filter_option
from stargrid_client.config import ENV_CONNECT_TIMEOUT
from stargrid_client.filters import any_of, match


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def mock_server(monkeypatch, transport):
    """Route the CLI's client through the mock transport."""
    monkeypatch.setattr(
        cli, "StargridClient", lambda config: StargridClient(config, transport.factory)
    )
    return transport


class TestFilterOptions:
    """Tests for -f / --filter-json parsing."""

    def test_parse_filter_option(self) -> None:
        assert parse_filter_option("transfer.amount=100") == ("transfer", "amount", "100")

    def test_value_may_contain_separators(self) -> None:
        assert parse_filter_option("message.action=/cosmos.bank.v1=send") == (
            "message",
            "action",
            "/cosmos.bank.v1=send",
        )

    @pytest.mark.parametrize("option", ["transfer.amount", "amount=100", ".amount=1", "transfer.=1"])
    def test_invalid_filter_option(self, option: str) -> None:
        with pytest.raises(click.BadParameter):
            parse_filter_option(option)

    def test_options_form_one_filter(self) -> None:
        filters = build_event_filters(("transfer.amount=100", "transfer.recipient=addr1"), None)
        assert filters == [{"transfer": {"amount": match("100"), "recipient": match("addr1")}}]

    def test_filter_json(self) -> None:
        raw = json.dumps([{"transfer": {"amount": {"anyOf": [{"match": "1"}, {"match": "2"}]}}}])
        filters = build_event_filters((), raw)
        assert filters == [{"transfer": {"amount": any_of(match("1"), match("2"))}}]

    def test_filter_json_single_object(self) -> None:
        filters = build_event_filters((), '{"transfer": {"amount": {"match": "1"}}}')
        assert filters == [{"transfer": {"amount": match("1")}}]

    def test_filter_json_invalid(self) -> None:
        with pytest.raises(click.BadParameter):
            build_event_filters((), "{nope")
        with pytest.raises(click.BadParameter):
            build_event_filters((), '[{"transfer": {"amount": {"equals": "1"}}}]')

    def test_no_filters(self) -> None:
        with pytest.raises(click.UsageError):
            build_event_filters((), None)


class TestCommands:
    """Tests for the click commands."""

    def test_txs_requires_filter(self, runner) -> None:
        result = runner.invoke(main, ["txs"])
        assert result.exit_code == 2
        assert "at least one --filter" in result.output

    def test_invalid_env(self, runner, monkeypatch) -> None:
        monkeypatch.setenv(ENV_CONNECT_TIMEOUT, "soon")
        result = runner.invoke(main, ["blocks"])
        assert result.exit_code == 2
        assert ENV_CONNECT_TIMEOUT in result.output

    def test_blocks(self, runner, mock_server, make_block) -> None:
        mock_server.feed(make_block(height=42))
        mock_server.server_close(1000, "bye")

        result = runner.invoke(main, ["--endpoint", "mock://node", "blocks"])

        assert result.exit_code == 0, result.output
        assert '"height":42' in result.output
        assert "Connection closed (1000 bye)" in result.output
        assert mock_server.endpoint == "mock://node"
        assert mock_server.sent_messages == [{"subscribe": "blocks"}]

    def test_txs(self, runner, mock_server, make_tx) -> None:
        mock_server.feed({"subscription": {"id": 1}})
        mock_server.feed(make_tx(1, height=7))
        mock_server.server_close(1000)

        result = runner.invoke(main, ["txs", "-f", "transfer.amount=100"])

        assert result.exit_code == 0, result.output
        assert '"txhash":"TX1H7"' in result.output
        assert mock_server.sent_messages == [
            {"subscribe": {"txs": {"id": 1, "filters": [{"transfer": {"amount": {"match": "100"}}}]}}}
        ]

    def test_rejected_subscription(self, runner, mock_server) -> None:
        mock_server.feed({"subscription": {"id": 1, "error": "invalid filter"}})
        mock_server.server_close(1000)

        result = runner.invoke(main, ["txs", "-f", "transfer.amount=100"])

        assert result.exit_code == 0
        assert "Subscription rejected: invalid filter" in result.output

    def test_connect_timeout(self, runner, monkeypatch) -> None:
        hanging = MockTransport(hang_on_open=True)
        monkeypatch.setattr(
            cli, "StargridClient", lambda config: StargridClient(config, hanging.factory)
        )

        result = runner.invoke(main, ["--timeout", "0.05", "blocks"])

        assert result.exit_code == 1
        assert "timed out" in result.output
