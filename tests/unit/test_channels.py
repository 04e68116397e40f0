"""Unit tests for Signal and ErrorSignal."""

from __future__ import annotations

import logging

import pytest

from stargrid_client.channels import ErrorSignal, Signal
from stargrid_client.errors import HandlerError


class TestSignal:
    """Tests for Signal delivery semantics."""

    @pytest.mark.asyncio
    async def test_emit_in_registration_order(self) -> None:
        """Sync and async handlers run in the order they were attached."""
        signal: Signal[int] = Signal("test")
        calls: list[str] = []

        async def async_handler(value: int) -> None:
            calls.append(f"async:{value}")

        signal.subscribe(lambda v: calls.append(f"sync:{v}"))
        signal.subscribe(async_handler)
        await signal.emit(1)
        await signal.emit(2)

        assert calls == ["sync:1", "async:1", "sync:2", "async:2"]

    @pytest.mark.asyncio
    async def test_detach(self) -> None:
        signal: Signal[int] = Signal("test")
        seen: list[int] = []

        detach = signal.subscribe(seen.append)
        await signal.emit(1)
        detach()
        detach()  # Idempotent
        await signal.emit(2)

        assert seen == [1]
        assert len(signal) == 0

    @pytest.mark.asyncio
    async def test_once(self) -> None:
        """once() handlers fire a single time."""
        signal: Signal[int] = Signal("test")
        seen: list[int] = []

        signal.once(seen.append)
        await signal.emit(1)
        await signal.emit(2)

        assert seen == [1]
        assert len(signal) == 0

    @pytest.mark.asyncio
    async def test_detached_once_never_fires(self) -> None:
        signal: Signal[int] = Signal("test")
        seen: list[int] = []

        detach = signal.once(seen.append)
        detach()
        await signal.emit(1)

        assert seen == []

    @pytest.mark.asyncio
    async def test_handler_attached_during_emit_waits_for_next(self) -> None:
        """Handlers attached while emitting only see later values."""
        signal: Signal[int] = Signal("test")
        late: list[int] = []

        signal.once(lambda _: signal.subscribe(late.append))
        await signal.emit(1)
        await signal.emit(2)

        assert late == [2]

    @pytest.mark.asyncio
    async def test_handler_error_goes_to_sink(self) -> None:
        """A failing handler is reported and does not stop later handlers."""
        errors = ErrorSignal()
        reported: list[BaseException] = []
        errors.subscribe(reported.append)

        signal: Signal[int] = Signal("block", error_sink=errors)
        seen: list[int] = []

        def broken(value: int) -> None:
            raise RuntimeError("boom")

        signal.subscribe(broken)
        signal.subscribe(seen.append)
        await signal.emit(7)

        assert seen == [7]
        assert len(reported) == 1
        error = reported[0]
        assert isinstance(error, HandlerError)
        assert error.signal == "block"
        assert isinstance(error.error, RuntimeError)
        assert error.__cause__ is error.error

    @pytest.mark.asyncio
    async def test_handler_error_without_sink_is_logged(self, caplog) -> None:
        signal: Signal[int] = Signal("test")

        async def broken(value: int) -> None:
            raise ValueError("bad")

        signal.subscribe(broken)
        with caplog.at_level(logging.ERROR, logger="stargrid_client.channels"):
            await signal.emit(1)

        assert "Error in handler for test" in caplog.text


class TestErrorSignal:
    """Tests for the shared error channel."""

    @pytest.mark.asyncio
    async def test_unhandled_errors_are_logged(self, caplog) -> None:
        errors = ErrorSignal()

        with caplog.at_level(logging.WARNING, logger="stargrid_client.channels"):
            await errors.emit(RuntimeError("nobody listening"))

        assert "Unhandled client error: RuntimeError: nobody listening" in caplog.text

    @pytest.mark.asyncio
    async def test_failing_error_handler_is_logged_not_reemitted(self, caplog) -> None:
        errors = ErrorSignal()
        calls: list[BaseException] = []

        def broken(error: BaseException) -> None:
            calls.append(error)
            raise RuntimeError("handler broke")

        errors.subscribe(broken)
        with caplog.at_level(logging.ERROR, logger="stargrid_client.channels"):
            await errors.emit(ValueError("first failure"))

        assert len(calls) == 1
        assert "Error in handler for error" in caplog.text
