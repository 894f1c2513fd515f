"""Atelier - folder-backed project tracker."""

from .core.event_bus import EventBus

__version__ = "1.0.0"

__all__ = ["EventBus", "__version__"]
