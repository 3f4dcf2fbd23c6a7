"""Event bus for orchestration events.

Provides a simple pub/sub event system. Events are published by the session
manager, the monitor loops and the refresh loop, and consumed by the board
bridge.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Callable

from beadherd.protocol.events import OrchestrationEvent

logger = logging.getLogger(__name__)

Subscriber = Callable[[OrchestrationEvent], Any]


class EventBus:
    """In-process pub/sub for orchestration events.

    Subscribers receive every published event synchronously, in publish
    order. A failing subscriber is logged and skipped; it never affects the
    publisher or the other subscribers.
    """

    def __init__(self, history_size: int = 500) -> None:
        self._subscribers: list[Subscriber] = []
        self._history: deque[OrchestrationEvent] = deque(maxlen=history_size)

    def publish(self, event: OrchestrationEvent) -> None:
        """Publish an event to all subscribers."""
        self._history.append(event)

        for cb in list(self._subscribers):
            try:
                cb(event)
            except Exception as exc:
                logger.warning("EventBus subscriber error: %s", exc)

    def subscribe(self, callback: Subscriber) -> None:
        """Register a subscriber."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        """Remove a subscriber."""
        self._subscribers = [cb for cb in self._subscribers if cb != callback]

    @property
    def history(self) -> list[OrchestrationEvent]:
        return list(self._history)

    def recent(self, n: int = 20) -> list[OrchestrationEvent]:
        """Return the *n* most recent events."""
        if n <= 0:
            return []
        return list(self._history)[-n:]
