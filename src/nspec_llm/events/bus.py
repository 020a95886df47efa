"""Async pub/sub bus for client lifecycle events."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable

from nspec_llm.types import ClientEvent, EventType

_logger = logging.getLogger(__name__)

# Subscribe with this key to receive every event
WILDCARD = "*"

Handler = Callable[[ClientEvent], Any]


class EventBus:
    """Fan client events out to sync or async handlers.

    Handler failures are logged and never reach the emitting call.
    """

    def __init__(self, max_history: int = 200) -> None:
        self._handlers: dict[str, list[Handler]] = {}
        self._history: list[ClientEvent] = []
        self._max_history = max_history

    def subscribe(self, event_type: EventType | str, handler: Handler) -> Callable[[], None]:
        """Register *handler*; returns a callable that unsubscribes it."""
        key = self._key(event_type)
        self._handlers.setdefault(key, []).append(handler)
        return lambda: self.unsubscribe(event_type, handler)

    def unsubscribe(self, event_type: EventType | str, handler: Handler) -> None:
        handlers = self._handlers.get(self._key(event_type), [])
        try:
            handlers.remove(handler)
        except ValueError:
            pass

    async def emit(self, event_type: EventType, **data: Any) -> ClientEvent:
        """Build a ``ClientEvent`` and deliver it to matching handlers."""
        event = ClientEvent(type=event_type, data=data)
        self._history.append(event)
        if len(self._history) > self._max_history:
            del self._history[: len(self._history) - self._max_history]

        handlers = list(self._handlers.get(event_type.value, []))
        handlers.extend(self._handlers.get(WILDCARD, []))
        if handlers:
            await asyncio.gather(
                *(self._call_handler(h, event) for h in handlers),
                return_exceptions=True,
            )
        return event

    @property
    def history(self) -> list[ClientEvent]:
        return list(self._history)

    def clear(self) -> None:
        self._handlers.clear()
        self._history.clear()

    @staticmethod
    def _key(event_type: EventType | str) -> str:
        if isinstance(event_type, EventType):
            return event_type.value
        return str(event_type)

    @staticmethod
    async def _call_handler(handler: Handler, event: ClientEvent) -> None:
        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            _logger.exception(
                "EventBus handler %s raised for event %s",
                getattr(handler, "__name__", handler),
                event.type.value,
            )
