"""Tests for the terminal process lifecycle tracker."""

from __future__ import annotations

import asyncio
import unittest

from fakes import FakeTerminal, FakeTerminalFactory

from prompt_relay.dispatch.lifecycle import ProcessLifecycleTracker
from prompt_relay.exceptions import LifecycleError
from prompt_relay.state import ProcessState


class ProcessLifecycleTrackerTests(unittest.IsolatedAsyncioTestCase):
    """Validate the explicit-only state transitions."""

    def _build(self, default_args: tuple[str, ...] = ()) -> ProcessLifecycleTracker:
        self.factory = FakeTerminalFactory()
        tracker = ProcessLifecycleTracker(self.factory, default_args=default_args)
        self.statuses: list[dict] = []
        tracker.on_status_change(self.statuses.append)
        return tracker

    async def test_starts_absent(self) -> None:
        tracker = self._build()
        self.assertIs(tracker.state, ProcessState.ABSENT)
        self.assertIsNone(tracker.handle)
        self.assertEqual(
            tracker.status(),
            {
                "isTerminalClosed": True,
                "isConnectedToExistingTerminal": False,
                "terminalName": "No Terminal",
            },
        )

    async def test_recreate_connects_with_args(self) -> None:
        tracker = self._build(default_args=("--model", "opus"))
        handle = await tracker.recreate(["-c"])
        self.assertIs(tracker.state, ProcessState.CONNECTED)
        self.assertIs(tracker.handle, handle)
        self.assertEqual(self.factory.calls, [["--model", "opus", "-c"]])
        self.assertEqual(
            self.statuses[-1],
            {
                "isTerminalClosed": False,
                "isConnectedToExistingTerminal": False,
                "terminalName": "Claude Code #1",
            },
        )

    async def test_closed_stays_closed_until_recreate(self) -> None:
        tracker = self._build()
        handle = await tracker.recreate()
        tracker.notify_closed(handle)
        self.assertIs(tracker.state, ProcessState.CLOSED)
        self.assertIsNone(tracker.handle)
        tracker.status()
        tracker.notify_closed()
        self.assertIs(tracker.state, ProcessState.CLOSED)
        self.assertEqual(len(self.factory.calls), 1)

        new_handle = await tracker.recreate()
        self.assertIsNot(new_handle, handle)
        self.assertIs(tracker.state, ProcessState.CONNECTED)

    async def test_stale_close_notification_is_ignored(self) -> None:
        tracker = self._build()
        old = await tracker.recreate()
        tracker.notify_closed(old)
        current = await tracker.recreate()
        tracker.notify_closed(old)
        self.assertIs(tracker.state, ProcessState.CONNECTED)
        self.assertIs(tracker.handle, current)

    async def test_recreate_while_connected_is_rejected(self) -> None:
        tracker = self._build()
        await tracker.recreate()
        with self.assertRaises(LifecycleError):
            await tracker.recreate()

    async def test_concurrent_recreate_starts_one_terminal(self) -> None:
        self.factory = FakeTerminalFactory(spawn_yields=5)
        tracker = ProcessLifecycleTracker(self.factory)
        results = await asyncio.gather(tracker.recreate(), tracker.recreate(), return_exceptions=True)
        self.assertEqual(len(self.factory.terminals), 1)
        self.assertIs(results[0], tracker.handle)
        self.assertIsInstance(results[1], LifecycleError)

    async def test_started_terminals_are_never_existing(self) -> None:
        tracker = self._build()
        await tracker.recreate()
        self.assertFalse(tracker.status()["isConnectedToExistingTerminal"])

    async def test_relaunch_closes_current_terminal(self) -> None:
        tracker = self._build()
        first = await tracker.recreate()
        second = await tracker.relaunch(["-r"])
        self.assertTrue(first.closed)
        self.assertIs(tracker.handle, second)
        self.assertEqual(self.factory.calls[-1], ["-r"])

    async def test_shutdown_closes_terminal(self) -> None:
        tracker = self._build()
        handle = await tracker.recreate()
        await tracker.shutdown()
        self.assertTrue(handle.closed)
        self.assertIs(tracker.state, ProcessState.CLOSED)

    async def test_failing_status_listener_does_not_block_transition(self) -> None:
        tracker = self._build()

        def _boom(_status: dict) -> None:
            raise RuntimeError("listener bug")

        tracker.on_status_change(_boom)
        with self.assertLogs("prompt_relay.dispatch.lifecycle", level="ERROR"):
            await tracker.recreate()
        self.assertIs(tracker.state, ProcessState.CONNECTED)


if __name__ == "__main__":
    unittest.main()
