"""Atelier core: models, errors and the event bus."""

from .event_bus import EventBus

__all__ = ["EventBus"]
