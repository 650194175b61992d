"""Event bus carrying outbound relay events to the UI shell.

Usage:
    bus = EventBus()

    async def on_status(event):
        print(event.data["terminalName"])

    bus.subscribe(TERMINAL_STATUS, on_status)
    await bus.publish(TERMINAL_STATUS, {"terminalName": "Claude Code"})
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import inspect
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)


@dataclass
class Event:
    """Event data container."""

    name: str
    data: dict[str, Any]
    source: str | None = None


class EventBus:
    """Publish/subscribe hub keyed by event name.

    A ``"*"`` subscription receives every event, which is how the envelope
    bridge forwards outbound traffic to an external host.
    """

    WILDCARD = "*"

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Callable]] = {}

    def subscribe(self, event_name: str, handler: Callable) -> None:
        """Subscribe to an event.

        Args:
            event_name: Event to listen for (e.g., "terminalStatus"), or "*"
            handler: Sync or async function called with the :class:`Event`
        """
        self._subscribers.setdefault(event_name, []).append(handler)
        LOGGER.debug("Subscribed to event: %s", event_name)

    def unsubscribe(self, event_name: str, handler: Callable) -> None:
        """Unsubscribe from an event.

        Args:
            event_name: Event to stop listening to
            handler: Handler function to remove
        """
        if event_name in self._subscribers:
            try:
                self._subscribers[event_name].remove(handler)
                LOGGER.debug("Unsubscribed from event: %s", event_name)
            except ValueError:
                pass

    async def publish(
        self, event_name: str, data: dict[str, Any], source: str | None = None
    ) -> None:
        """Publish an event to all subscribers.

        Handler failures are logged and never reach the publisher.
        """
        event = Event(name=event_name, data=data, source=source)
        handlers = [
            *self._subscribers.get(event_name, []),
            *self._subscribers.get(self.WILDCARD, []),
        ]

        if not handlers:
            LOGGER.debug("No subscribers for event: %s", event_name)
            return

        for handler in handlers:
            try:
                if inspect.iscoroutinefunction(handler):
                    await handler(event)
                else:
                    handler(event)
            except Exception as e:
                LOGGER.error(
                    "events.handler_failed",
                    extra={"event": "events.handler_failed", "name": event_name, "error": str(e)},
                )

    def clear(self, event_name: str | None = None) -> None:
        """Clear subscribers.

        Args:
            event_name: Specific event to clear, or None for all
        """
        if event_name:
            self._subscribers.pop(event_name, None)
        else:
            self._subscribers.clear()
