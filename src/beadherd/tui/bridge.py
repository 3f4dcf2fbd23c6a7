"""Herd bridge: connects orchestration events to the Textual board.

Subscribes to the ``EventBus`` and posts one Textual ``Message`` per event,
so widgets handle events on the app's own message queue, one at a time.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from textual.message import Message

from beadherd.protocol.events import OrchestrationEvent

if TYPE_CHECKING:
    from textual.app import App

    from beadherd.coordinator.event_bus import EventBus

logger = logging.getLogger(__name__)


class HerdEventMessage(Message):
    """Carries a single orchestration event to the TUI."""

    def __init__(self, event: OrchestrationEvent) -> None:
        super().__init__()
        self.event = event


class HerdBridge:
    """Bridges ``EventBus`` events to Textual ``Message`` objects.

    Usage::

        bridge = HerdBridge(app)
        bridge.connect(bus)
    """

    def __init__(self, app: "App") -> None:
        self._app = app
        self._event_bus: EventBus | None = None

    @property
    def connected(self) -> bool:
        return self._event_bus is not None

    def connect(self, event_bus: "EventBus") -> None:
        """Subscribe to the event bus."""
        self._event_bus = event_bus
        event_bus.subscribe(self._on_event)

    def disconnect(self) -> None:
        """Unsubscribe."""
        if self._event_bus:
            self._event_bus.unsubscribe(self._on_event)
            self._event_bus = None

    def _on_event(self, event: OrchestrationEvent) -> None:
        if not self._app.post_message(HerdEventMessage(event)):
            logger.debug("Board not accepting messages, dropped %s", type(event).__name__)
