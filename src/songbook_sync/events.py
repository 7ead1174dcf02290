"""Collection update notifications.

A minimal publish/subscribe channel so the cache layer never needs to know
who reacts to an update (a UI, a websocket push, a test).
"""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from songbook_sync.models.cache import CollectionUpdated

    Handler = Callable[[CollectionUpdated], Awaitable[Any] | Any]

log = structlog.get_logger()


class CollectionEvents:
    def __init__(self) -> None:
        self._handlers: list[Handler] = []

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        """Register a handler. Returns a callable that unsubscribes it."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    async def publish(self, event: CollectionUpdated) -> None:
        """Deliver an event to every handler in subscription order.

        Handler failures are logged and never reach the publisher.
        """
        for handler in list(self._handlers):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                log.warning(
                    "event_handler_error",
                    collection_id=event.collection_id,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    exc_info=True,
                )
