"""Process-wide change notifications for UI layers.

Handlers take no payload: a subscriber re-reads whatever state it cares
about when notified. Delivery is synchronous and in registration order.
"""

from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger(__name__)

ONBOARDING_UPDATED = "onboarding_updated"
DATA_CLEARED = "data_cleared"
CONCEPTS_UPDATED = "concepts_updated"

ALL_EVENTS = (ONBOARDING_UPDATED, DATA_CLEARED, CONCEPTS_UPDATED)

Handler = Callable[[], None]


class EventBus:
    """Named-event publish/subscribe channel."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}

    def subscribe(self, event_name: str, handler: Handler) -> None:
        """Register *handler* for *event_name*. Duplicates are kept."""
        self._handlers.setdefault(event_name, []).append(handler)

    def unsubscribe(self, event_name: str, handler: Handler) -> None:
        """Remove every registration of *handler* (matched by identity)."""
        handlers = self._handlers.get(event_name)
        if not handlers:
            return
        self._handlers[event_name] = [h for h in handlers if h is not handler]

    def publish(self, event_name: str) -> None:
        """Invoke the handlers registered for *event_name*.

        A failing handler is logged and does not stop the remaining ones.
        """
        for handler in list(self._handlers.get(event_name, ())):
            try:
                handler()
            except Exception:
                logger.exception("Handler %r for event '%s' failed", handler, event_name)

    def handler_count(self, event_name: str) -> int:
        return len(self._handlers.get(event_name, ()))


__all__ = [
    "ONBOARDING_UPDATED",
    "DATA_CLEARED",
    "CONCEPTS_UPDATED",
    "ALL_EVENTS",
    "Handler",
    "EventBus",
]
