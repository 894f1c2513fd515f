"""
Single-slot debounce primitive.

Each submission replaces whatever is pending; only the most recent callback
survives the quiet period. Runs on the asyncio event loop that owns the
caller, so the callback executes in the same context as the code that
submitted it.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

from atelier.utils.logging import get_logger

logger = get_logger("utils.debounce")


class Debouncer:
    """Delay a callback until submissions stop arriving.

    Usage:
        debouncer = Debouncer(0.8)
        debouncer.submit(lambda: store.set_notes(project_id, draft))
    """

    def __init__(self, delay: float, loop: asyncio.AbstractEventLoop | None = None):
        if delay < 0:
            raise ValueError(f"Debounce delay must be >= 0, got {delay}")
        self.delay = delay
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None
        self._pending: Optional[Callable[[], None]] = None

    @property
    def pending(self) -> bool:
        """True while a callback is waiting for the quiet period to end."""
        return self._pending is not None

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def submit(self, callback: Callable[[], None]) -> None:
        """Schedule callback, cancelling any previously pending one."""
        loop = self._get_loop()
        self._cancel_handle()
        self._pending = callback
        self._handle = loop.call_later(self.delay, self._fire)

    def flush(self) -> bool:
        """Run the pending callback now. Returns False if nothing was pending."""
        if self._pending is None:
            return False
        self._cancel_handle()
        self._fire()
        return True

    def cancel(self) -> None:
        """Drop the pending callback without running it."""
        self._cancel_handle()
        self._pending = None

    def _cancel_handle(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        callback, self._pending = self._pending, None
        self._handle = None
        if callback is None:
            return
        try:
            callback()
        except Exception as exc:
            logger.error(f"Debounced callback failed: {type(exc).__name__}: {exc}", exc_info=exc)
