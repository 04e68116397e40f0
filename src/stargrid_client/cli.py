"""Stargrid client CLI.

Streams events from a Stargrid server as JSON lines on stdout.
Diagnostics go to stderr.

Usage:
    stargrid-client blocks                                  # Every block
    stargrid-client txs -f transfer.recipient=addr1         # Matching txs
    stargrid-client txs -f transfer.amount=100 -f transfer.denom=uatom
    stargrid-client txs --filter-json '[{"transfer": {"amount": {"anyOf": [{"match": "1"}, {"match": "2"}]}}}]'
    stargrid-client --endpoint ws://node:27043 --verbose blocks
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Coroutine
from typing import Any

import click

from .client import StargridClient
from .config import ClientConfig
from .errors import StargridClientError, SubscriptionError
from .filters import EventFilter, FilterExpr, decode_event_filter, match
from .types import Block, Tx


def parse_filter_option(option: str) -> tuple[str, str, str]:
    """Split `EVENT.ATTR=VALUE` into its parts."""
    key, sep, value = option.partition("=")
    event, dot, attr = key.partition(".")
    if not sep or not dot or not event or not attr:
        raise click.BadParameter(f"expected EVENT.ATTR=VALUE, got {option!r}")
    return event, attr, value


def build_event_filters(options: tuple[str, ...], filter_json: str | None) -> list[EventFilter]:
    """Build the EventFilter list for the `txs` command.

    All -f options form a single EventFilter; --filter-json supplies a list
    of additional ones in wire form.
    """
    filters: list[EventFilter] = []

    if options:
        combined: dict[str, dict[str, FilterExpr]] = {}
        for option in options:
            event, attr, value = parse_filter_option(option)
            combined.setdefault(event, {})[attr] = match(value)
        filters.append(combined)

    if filter_json:
        try:
            data = json.loads(filter_json)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"invalid JSON: {e}", param_hint="--filter-json") from e
        if isinstance(data, dict):
            data = [data]
        try:
            filters.extend(decode_event_filter(item) for item in data)
        except (TypeError, ValueError) as e:
            raise click.BadParameter(str(e), param_hint="--filter-json") from e

    if not filters:
        raise click.UsageError("txs needs at least one --filter or --filter-json")
    return filters


@click.group()
@click.option("--endpoint", "-e", default=None, help="Server URL (default: $STARGRID_ENDPOINT)")
@click.option("--timeout", "-t", type=float, default=None, help="Connect timeout in seconds")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging on stderr")
@click.pass_context
def main(ctx: click.Context, endpoint: str | None, timeout: float | None, verbose: bool) -> None:
    """Stream block and transaction events from a Stargrid server."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        config = ClientConfig.from_env()
    except ValueError as e:
        raise click.UsageError(str(e)) from e
    if endpoint:
        config.endpoint = endpoint
    if timeout is not None:
        config.connect_timeout = timeout
    ctx.obj = config


@main.command()
@click.pass_obj
def blocks(config: ClientConfig) -> None:
    """Print every new block."""

    async def run() -> None:
        client = StargridClient(config)
        client.on_error(_report_error)
        await client.connect()

        def on_block(block: Block) -> None:
            click.echo(block.model_dump_json())

        await client.on_block(on_block)
        await _wait(client)

    _run(run())


@main.command()
@click.option(
    "--filter", "-f", "filter_options", multiple=True, help="EVENT.ATTR=VALUE (repeatable)"
)
@click.option("--filter-json", default=None, help="JSON list of event filters in wire form")
@click.pass_obj
def txs(config: ClientConfig, filter_options: tuple[str, ...], filter_json: str | None) -> None:
    """Print transactions matching the given filters."""
    filters = build_event_filters(filter_options, filter_json)

    async def run() -> None:
        client = StargridClient(config)
        client.on_error(_report_error)
        await client.connect()

        subscription = await client.on_tx(filters)

        async def printer() -> None:
            tx: Tx
            async for tx in subscription:
                click.echo(tx.model_dump_json())

        printing = asyncio.create_task(printer())
        try:
            await _wait(client)
        finally:
            # The stream ends with the connection; let buffered txs print
            await printing

    _run(run())


async def _wait(client: StargridClient) -> None:
    frame = await client.sync()
    click.echo(f"Connection closed ({frame.code} {frame.reason})".rstrip(), err=True)


def _report_error(error: BaseException) -> None:
    if isinstance(error, SubscriptionError):
        click.echo(f"Subscription rejected: {error.message}", err=True)
    else:
        click.echo(f"Error: {error}", err=True)


def _run(coro: Coroutine[Any, Any, None]) -> None:
    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        click.echo("\nShutting down", err=True)
    except (StargridClientError, OSError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Connection lost: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
