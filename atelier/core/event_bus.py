from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Coroutine, Dict, List, Set, TypeAlias

EventPayload: TypeAlias = Dict[str, Any]
EventHandler: TypeAlias = Callable[[EventPayload], Awaitable[None]]


class EventBus:
    """Fan-out of store notifications to async observers.

    Handlers run as tasks on the event loop. A failing handler is logged and
    does not affect the others. The bus keeps every task it schedules until
    it finishes, so a queued alert cannot be collected before it is delivered.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[EventHandler]] = defaultdict(list)
        self._pending: Set[asyncio.Task] = set()
        self._logger = logging.getLogger(__name__)

    @property
    def pending(self) -> int:
        """Number of publishes and handler calls not yet finished."""
        return len(self._pending)

    async def subscribe(self, topic: str, handler: EventHandler) -> None:
        if handler not in self._subscribers[topic]:
            self._subscribers[topic].append(handler)

    async def unsubscribe(self, topic: str, handler: EventHandler) -> None:
        handlers = self._subscribers.get(topic)
        if handlers and handler in handlers:
            handlers.remove(handler)

    async def publish(self, topic: str, payload: EventPayload) -> None:
        """Deliver ``payload`` to every handler subscribed to ``topic``."""
        handlers = list(self._subscribers.get(topic, []))
        if not handlers:
            self._logger.debug(f"No subscribers for '{topic}'")
            return

        self._logger.debug(f"Publishing '{topic}' to {len(handlers)} handler(s)")
        loop = asyncio.get_running_loop()
        for handler in handlers:
            self._track(loop, self._safe_dispatch(topic, handler, payload))

    def publish_nowait(self, topic: str, payload: EventPayload) -> bool:
        """Schedule a publish from synchronous code running on the event loop.

        Returns False when no loop is running; the event is dropped.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._logger.debug(f"No running loop, dropping event '{topic}'")
            return False
        self._track(loop, self.publish(topic, payload))
        return True

    async def drain(self) -> None:
        """Wait until every scheduled publish and handler call has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _track(self, loop: asyncio.AbstractEventLoop, coro: Coroutine[Any, Any, None]) -> None:
        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _safe_dispatch(self, topic: str, handler: EventHandler, payload: EventPayload) -> None:
        try:
            await handler(payload)
        except Exception as exc:
            name = getattr(handler, "__name__", repr(handler))
            self._logger.exception(f"Handler '{name}' failed on '{topic}'", exc_info=exc)

    def clear(self) -> None:
        """Drop all subscriptions and cancel deliveries still queued."""
        self._subscribers.clear()
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()
