"""Tests for the outbound event bus."""

from __future__ import annotations

import unittest

from prompt_relay.events import domain
from prompt_relay.events.bus import Event, EventBus


class EventBusTests(unittest.IsolatedAsyncioTestCase):
    """Validate subscription, wildcard delivery and handler isolation."""

    async def test_sync_and_async_handlers_receive_event(self) -> None:
        bus = EventBus()
        received: list[Event] = []

        async def _async_handler(event: Event) -> None:
            received.append(event)

        bus.subscribe(domain.TERMINAL_STATUS, received.append)
        bus.subscribe(domain.TERMINAL_STATUS, _async_handler)
        await bus.publish(domain.TERMINAL_STATUS, {"terminalName": "Claude Code"}, source="test")
        self.assertEqual(len(received), 2)
        self.assertEqual(received[0].data, {"terminalName": "Claude Code"})
        self.assertEqual(received[0].source, "test")

    async def test_wildcard_receives_everything(self) -> None:
        bus = EventBus()
        names: list[str] = []
        bus.subscribe(EventBus.WILDCARD, lambda event: names.append(event.name))
        await bus.publish(domain.FOCUS_INPUT, {})
        await bus.publish(domain.SHOW_WARNING, {"message": "x"})
        self.assertEqual(names, [domain.FOCUS_INPUT, domain.SHOW_WARNING])

    async def test_failing_handler_does_not_stop_others(self) -> None:
        bus = EventBus()
        received: list[str] = []

        def _broken(_event: Event) -> None:
            raise RuntimeError("handler bug")

        bus.subscribe(domain.SHOW_WARNING, _broken)
        bus.subscribe(domain.SHOW_WARNING, lambda event: received.append(event.data["message"]))
        with self.assertLogs("prompt_relay.events.bus", level="ERROR"):
            await bus.publish(domain.SHOW_WARNING, {"message": "still delivered"})
        self.assertEqual(received, ["still delivered"])

    async def test_unsubscribe_and_clear(self) -> None:
        bus = EventBus()
        received: list[Event] = []
        bus.subscribe(domain.FOCUS_INPUT, received.append)
        bus.unsubscribe(domain.FOCUS_INPUT, received.append)
        bus.unsubscribe(domain.FOCUS_INPUT, received.append)
        await bus.publish(domain.FOCUS_INPUT, {})
        bus.subscribe(domain.FOCUS_INPUT, received.append)
        bus.clear()
        await bus.publish(domain.FOCUS_INPUT, {})
        self.assertEqual(received, [])

    def test_outbound_event_names(self) -> None:
        self.assertIn("terminalStatus", domain.OUTBOUND_EVENTS)
        self.assertIn("customCommandsUpdated", domain.OUTBOUND_EVENTS)
        self.assertEqual(len(domain.OUTBOUND_EVENTS), 13)


if __name__ == "__main__":
    unittest.main()
