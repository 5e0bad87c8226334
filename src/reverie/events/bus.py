"""Async pub/sub EventBus carrying generation progress to observers."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from typing import Any, Callable

from reverie.types import AgentEvent, EventType

_logger = logging.getLogger(__name__)

# Sentinel used for wildcard subscriptions (receive all events)
_WILDCARD = "*"

# Type alias for handlers (sync or async callables taking an AgentEvent)
Handler = Callable[[AgentEvent], Any]


class EventBus:
    """Lightweight async pub/sub event bus.

    Subscribe to a specific :class:`EventType` or to ``"*"`` for everything.
    Handlers can be sync or async; ``emit()`` fans out to all matching
    handlers concurrently and logs (never propagates) handler failures, so a
    broken observer cannot fail a generation.

    Parameters
    ----------
    max_history:
        Number of recent events kept for inspection.
    """

    def __init__(self, max_history: int = 200) -> None:
        self._handlers: dict[str, list[Handler]] = {}
        self._history: deque[AgentEvent] = deque(maxlen=max_history)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def subscribe(
        self,
        event_type: EventType | str,
        handler: Handler,
    ) -> Callable[[], None]:
        """Register *handler* for *event_type* (or ``"*"`` for all).

        Returns a callable that removes the subscription again.
        """
        key = self._key(event_type)
        self._handlers.setdefault(key, []).append(handler)
        return lambda: self.unsubscribe(event_type, handler)

    def unsubscribe(
        self,
        event_type: EventType | str,
        handler: Handler,
    ) -> None:
        """Remove *handler* from *event_type*."""
        handlers = self._handlers.get(self._key(event_type), [])
        if handler in handlers:
            handlers.remove(handler)

    async def emit(self, event: AgentEvent) -> None:
        """Emit an event to all matching handlers."""
        self._history.append(event)

        handlers = list(self._handlers.get(self._key(event.type), []))
        handlers.extend(self._handlers.get(_WILDCARD, []))
        if not handlers:
            return

        await asyncio.gather(
            *(self._call_handler(h, event) for h in handlers),
            return_exceptions=True,
        )

    async def publish(self, event_type: EventType, **data: Any) -> None:
        """Shorthand for ``emit(AgentEvent(event_type, data))``."""
        await self.emit(AgentEvent(type=event_type, data=data))

    def history(self, event_type: EventType | None = None) -> list[AgentEvent]:
        """Return recent events, optionally only those of *event_type*."""
        if event_type is None:
            return list(self._history)
        return [e for e in self._history if e.type is event_type]

    def clear(self) -> None:
        """Remove all handlers and history."""
        self._handlers.clear()
        self._history.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _key(event_type: EventType | str) -> str:
        if isinstance(event_type, EventType):
            return event_type.value
        return str(event_type)

    @staticmethod
    async def _call_handler(handler: Handler, event: AgentEvent) -> None:
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
