"""Tests for send-time routing between the terminal and direct transports."""

from __future__ import annotations

import asyncio
from pathlib import Path
import tempfile
import unittest

from fakes import FakeDirectSession, FakeTerminalFactory, ManualClock

from prompt_relay.composer.context import ContextAssembler, DiagnosticRef, OutboundMessage
from prompt_relay.dispatch.lifecycle import ProcessLifecycleTracker
from prompt_relay.dispatch.router import DispatchRouter
from prompt_relay.dispatch.terminal import PASTE_END, PASTE_START, SHIFT_TAB, TerminalDelivery
from prompt_relay.exceptions import TerminalTransportError
from prompt_relay.images import ImageAttachment, ImageStore
from prompt_relay.state import DeliveryMode, ProcessState, SessionMode


class DispatchRouterTests(unittest.IsolatedAsyncioTestCase):
    """Validate routing, recreate-and-replay and passthrough rules."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)

    def _build(self, factory: FakeTerminalFactory | None = None) -> DispatchRouter:
        self.factory = factory or FakeTerminalFactory()
        self.lifecycle = ProcessLifecycleTracker(self.factory)
        self.direct = FakeDirectSession()
        delivery = TerminalDelivery(
            clock=ManualClock(),
            settle_delay_ms=0,
            focus_delay_ms=0,
            focus_retry_offsets_ms=[0],
        )
        router = DispatchRouter(
            assembler=ContextAssembler(ImageStore(Path(self._tmp.name))),
            lifecycle=self.lifecycle,
            delivery=delivery,
            direct=self.direct,
        )
        self.warnings: list[str] = []
        self.modes: list[SessionMode] = []
        router.on_warning(self.warnings.append)
        router.on_mode_change(self.modes.append)
        return router

    async def test_empty_message_is_a_silent_noop(self) -> None:
        router = self._build()
        self.assertIsNone(await router.send(OutboundMessage(text="  \n")))
        self.assertEqual(self.factory.calls, [])
        self.assertEqual(self.direct.sent, [])

    async def test_absent_terminal_is_created_before_delivery(self) -> None:
        router = self._build()
        outcome = await router.send(OutboundMessage(text="hello"))
        self.assertTrue(outcome.recreated)
        self.assertIs(outcome.delivery_mode, DeliveryMode.TYPED)
        terminal = self.factory.terminals[0]
        self.assertEqual(terminal.ready_waits, 1)
        self.assertEqual(terminal.writes, [("hello", False), ("", True)])

    async def test_connected_terminal_is_reused(self) -> None:
        router = self._build()
        await self.lifecycle.recreate()
        outcome = await router.send(OutboundMessage(text="a\nb"))
        self.assertFalse(outcome.recreated)
        self.assertIs(outcome.delivery_mode, DeliveryMode.PASTE)
        self.assertEqual(len(self.factory.calls), 1)
        self.assertEqual(self.factory.terminals[0].texts[0], f"{PASTE_START}a\nb{PASTE_END}")

    async def test_closed_terminal_is_recreated_and_message_replayed(self) -> None:
        router = self._build()
        old = await self.lifecycle.recreate()
        self.lifecycle.notify_closed(old)
        outcome = await router.send(OutboundMessage(text="replay me"))
        self.assertTrue(outcome.recreated)
        self.assertEqual(old.writes, [])
        new = self.factory.terminals[1]
        self.assertEqual(new.texts, ["replay me", ""])
        self.assertIs(self.lifecycle.state, ProcessState.CONNECTED)

    async def test_concurrent_sends_share_one_fresh_terminal(self) -> None:
        router = self._build(FakeTerminalFactory(spawn_yields=5))
        first, second = await asyncio.gather(
            router.send(OutboundMessage(text="first")),
            router.send(OutboundMessage(text="second")),
        )
        self.assertEqual(len(self.factory.terminals), 1)
        self.assertTrue(first.recreated)
        self.assertFalse(second.recreated)
        terminal = self.factory.terminals[0]
        self.assertEqual(terminal.texts, ["first", "", "second", ""])
        self.assertIs(self.lifecycle.handle, terminal)

    async def test_launch_waits_for_inflight_send(self) -> None:
        router = self._build(FakeTerminalFactory(spawn_yields=5))
        await asyncio.gather(
            router.send(OutboundMessage(text="hello")),
            router.launch("continue"),
        )
        first, second = self.factory.terminals
        self.assertEqual(first.texts, ["hello", ""])
        self.assertTrue(first.closed)
        self.assertIs(self.lifecycle.handle, second)

    async def test_write_failure_closes_and_replays_once(self) -> None:
        router = self._build(FakeTerminalFactory(fail_first_writes=1))
        await self.lifecycle.recreate()
        outcome = await router.send(OutboundMessage(text="again"))
        self.assertTrue(outcome.recreated)
        first, second = self.factory.terminals
        self.assertEqual(first.writes, [])
        self.assertEqual(second.texts, ["again", ""])

    async def test_failure_on_fresh_terminal_propagates(self) -> None:
        router = self._build(FakeTerminalFactory(fail_first_writes=1))
        with self.assertRaises(TerminalTransportError):
            await router.send(OutboundMessage(text="x"))

    async def test_direct_mode_bypasses_terminal(self) -> None:
        router = self._build()
        router.set_mode(SessionMode.DIRECT)
        diagnostic = DiagnosticRef("a.ts", 5, 2, "Error", "oops")
        outcome = await router.send(OutboundMessage(text="fix", diagnostics=(diagnostic,)))
        self.assertIs(outcome.session_mode, SessionMode.DIRECT)
        self.assertEqual(self.direct.sent, [outcome.payload])
        self.assertIn("<problems>", outcome.payload)
        self.assertEqual(self.factory.calls, [])
        self.assertEqual(self.modes, [SessionMode.DIRECT])

    async def test_set_same_mode_does_not_notify(self) -> None:
        router = self._build()
        router.set_mode(SessionMode.TERMINAL)
        self.assertEqual(self.modes, [])

    async def test_slash_commands_pass_through_raw(self) -> None:
        router = self._build()
        router.set_mode(SessionMode.DIRECT)
        outcome = await router.send(OutboundMessage(text="  /compact keep tests  "))
        self.assertEqual(outcome.payload, "/compact keep tests")

    async def test_image_failure_warns_and_sends_rest(self) -> None:
        router = self._build()
        router.set_mode(SessionMode.DIRECT)
        missing = ImageAttachment(name="gone.png", origin="drop", path="/nonexistent/gone.png")
        outcome = await router.send(OutboundMessage(text="look", images=(missing,)))
        self.assertEqual(outcome.payload, "look")
        self.assertEqual(self.warnings, ["Failed to attach 1 image(s): gone.png"])

    async def test_pause_only_applies_in_direct_mode(self) -> None:
        router = self._build()
        await router.pause()
        self.assertEqual(self.direct.paused, 0)
        router.set_mode(SessionMode.DIRECT)
        await router.pause()
        self.assertEqual(self.direct.paused, 1)

    async def test_clear_direct_resets_session(self) -> None:
        router = self._build()
        await router.clear_direct()
        self.assertEqual(self.direct.resets, 1)

    async def test_cycle_agent_mode_needs_terminal(self) -> None:
        router = self._build()
        self.assertFalse(await router.cycle_agent_mode())
        self.assertEqual(self.warnings, ["No active Claude terminal to toggle mode in."])

        terminal = await self.lifecycle.recreate()
        self.assertTrue(await router.cycle_agent_mode())
        self.assertEqual(terminal.writes, [(SHIFT_TAB, False)])

    async def test_launch_variants(self) -> None:
        router = self._build()
        first = await router.launch("continue")
        self.assertEqual(self.factory.calls, [["-c"]])
        self.assertEqual(first.shows, [False])

        await router.launch("history")
        self.assertTrue(first.closed)
        self.assertEqual(self.factory.calls[-1], ["-r"])

        await router.launch("new")
        self.assertEqual(self.factory.calls[-1], [])


if __name__ == "__main__":
    unittest.main()
