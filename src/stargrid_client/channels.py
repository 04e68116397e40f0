"""In-process signals used to fan events out to handlers.

A Signal is a named broadcast channel. Handlers are called in registration
order; coroutine handlers are awaited before the next handler runs, so
delivery order equals emit order.

Handler failures never escape emit(). They are wrapped in HandlerError and
forwarded to the signal's error sink, or logged when the signal has none.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from .errors import HandlerError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Plain function or coroutine function taking the emitted value
Handler = Callable[[T], Any]


@dataclass(eq=False)
class _Listener(Generic[T]):
    handler: Handler[T]
    once: bool = False


class Signal(Generic[T]):
    """Typed broadcast channel with subscribe/once semantics.

    Usage:
        blocks: Signal[Block] = Signal("block", error_sink=errors)
        detach = blocks.subscribe(print)
        await blocks.emit(block)
        detach()
    """

    def __init__(self, name: str, error_sink: Signal[BaseException] | None = None):
        self.name = name
        self._error_sink = error_sink
        self._listeners: list[_Listener[T]] = []

    def __len__(self) -> int:
        return len(self._listeners)

    def subscribe(self, handler: Handler[T]) -> Callable[[], None]:
        """Attach a handler. Returns a function that detaches it."""
        return self._add(_Listener(handler))

    def once(self, handler: Handler[T]) -> Callable[[], None]:
        """Attach a handler that is detached before its first call."""
        return self._add(_Listener(handler, once=True))

    def _add(self, listener: _Listener[T]) -> Callable[[], None]:
        self._listeners.append(listener)

        def detach() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return detach

    def clear(self) -> None:
        self._listeners.clear()

    async def emit(self, value: T) -> None:
        """Deliver `value` to every handler attached at the time of the call."""
        # Snapshot so handlers may attach/detach while we iterate
        for listener in list(self._listeners):
            if listener.once:
                if listener not in self._listeners:
                    continue
                self._listeners.remove(listener)
            try:
                result = listener.handler(value)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                await self._handler_failed(e)

    async def _handler_failed(self, error: Exception) -> None:
        if self._error_sink is None:
            logger.exception(f"Error in handler for {self.name}")
            return
        await self._error_sink.emit(HandlerError(self.name, error))


class ErrorSignal(Signal[BaseException]):
    """Signal for the shared error channel.

    Errors emitted while nobody listens are logged at WARNING instead of
    being dropped.
    """

    def __init__(self, name: str = "error"):
        super().__init__(name)

    async def emit(self, value: BaseException) -> None:
        if not self._listeners:
            logger.warning(f"Unhandled client error: {type(value).__name__}: {value}")
            return
        await super().emit(value)
