"""Event bus for generation progress."""

from reverie.events.bus import EventBus

__all__ = ["EventBus"]
