"""In-process dispatcher for same-service listeners."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
import inspect
import logging
from typing import Any

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], Awaitable[None] | None]


class LocalEventDispatcher:
    """Subscribe handlers by event class; publish invokes them in order.

    Handlers may be plain callables or coroutine functions. Exceptions raised
    by a handler propagate to the publisher.
    """

    def __init__(self) -> None:
        self._handlers: dict[type, list[EventHandler]] = {}

    def subscribe(self, event_type: type, handler: EventHandler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def listener(self, event_type: type) -> Callable[[EventHandler], EventHandler]:
        """Decorator form of subscribe()."""

        def _subscribe(handler: EventHandler) -> EventHandler:
            self.subscribe(event_type, handler)
            return handler

        return _subscribe

    async def publish(self, event: object) -> int:
        """Invoke every handler subscribed to the event's exact class.

        Returns:
            Number of handlers invoked
        """
        handlers = self._handlers.get(type(event), [])
        for handler in handlers:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        if handlers:
            logger.debug(
                "Dispatched event to local listeners",
                extra={"event": type(event).__name__, "listeners": len(handlers)},
            )
        return len(handlers)
