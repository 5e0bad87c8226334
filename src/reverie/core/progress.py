"""Per-invocation progress reporting."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable

from reverie.events.bus import EventBus
from reverie.types import EventType

_logger = logging.getLogger(__name__)

# Caller-supplied sink: ``on_progress(message, metadata)``, sync or async
ProgressCallback = Callable[[str, dict[str, Any]], Any]


class ProgressReporter:
    """Fans status messages out to a caller callback and the event bus.

    One reporter is created per invocation, so concurrent invocations sharing
    an :class:`EventBus` never see each other's caller callbacks.
    """

    def __init__(
        self,
        event_bus: EventBus | None = None,
        callback: ProgressCallback | None = None,
    ) -> None:
        self._event_bus = event_bus
        self._callback = callback

    async def report(
        self,
        message: str,
        event_type: EventType = EventType.PROGRESS,
        **data: Any,
    ) -> None:
        """Send a human-readable *message* plus structured *data*."""
        _logger.debug("%s", message)
        if self._callback is not None:
            try:
                result = self._callback(message, dict(data))
                if inspect.isawaitable(result):
                    await result
            except Exception:
                _logger.exception("Progress callback raised for: %s", message)
        await self.emit(event_type, message=message, **data)

    async def emit(self, event_type: EventType, **data: Any) -> None:
        """Publish a structured event without a caller-visible message."""
        if self._event_bus is not None:
            await self._event_bus.publish(event_type, **data)
