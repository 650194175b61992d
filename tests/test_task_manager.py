"""Tests for the TaskManager lifecycle helper."""

from __future__ import annotations

import asyncio
import unittest

from fakes import ManualClock

from prompt_relay.task_manager import Debouncer, GenerationGate, TaskManager


class TaskManagerTests(unittest.IsolatedAsyncioTestCase):
    """Validate background task tracking and shutdown."""

    async def test_add_and_cancel_all(self) -> None:
        tm = TaskManager()
        cancelled: list[bool] = []

        async def _worker() -> None:
            try:
                await asyncio.sleep(9999)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        task = asyncio.create_task(_worker())
        tm.add(task)
        await asyncio.sleep(0)  # Let the task start.
        await tm.cancel_all()
        self.assertTrue(task.done())
        self.assertTrue(cancelled)

    async def test_tasks_self_clean(self) -> None:
        tm = TaskManager()

        async def _quick() -> None:
            pass

        task = tm.spawn(_quick())
        await task
        await asyncio.sleep(0)
        self.assertEqual(tm._tasks, set())
        await tm.cancel_all()

    async def test_spawn_logs_failures(self) -> None:
        tm = TaskManager()

        async def _fails() -> None:
            raise RuntimeError("background failure")

        with self.assertLogs("prompt_relay.task_manager", level="WARNING") as logs:
            task = tm.spawn(_fails())
            with self.assertRaises(RuntimeError):
                await task
            await asyncio.sleep(0)
        self.assertTrue(any("task.exception" in line for line in logs.output))


class GenerationGateTests(unittest.IsolatedAsyncioTestCase):
    """Validate that only the newest generation delivers."""

    async def test_stale_results_are_discarded(self) -> None:
        gate: GenerationGate[str] = GenerationGate("test")
        releases = {name: asyncio.Event() for name in ("old", "new")}
        delivered: list[tuple[int, str]] = []

        def _job(name: str):  # noqa: ANN202
            async def _run() -> str:
                await releases[name].wait()
                return name

            return _run

        old = gate.submit(_job("old"), lambda gen, res: delivered.append((gen, res)))
        new = gate.submit(_job("new"), lambda gen, res: delivered.append((gen, res)))
        releases["new"].set()
        await asyncio.sleep(0)
        releases["old"].set()
        await gate.drain()
        self.assertEqual(delivered, [(new, "new")])
        self.assertFalse(gate.is_current(old))

    async def test_errors_reach_current_generation_only(self) -> None:
        gate: GenerationGate[str] = GenerationGate("test")
        errors: list[str] = []

        async def _fail() -> str:
            raise ValueError("bad")

        gate.submit(_fail, lambda gen, res: None, lambda gen, exc: errors.append(str(exc)))
        await gate.drain()
        self.assertEqual(errors, ["bad"])

        gate.submit(_fail, lambda gen, res: None, lambda gen, exc: errors.append("late"))
        gate.invalidate()
        await gate.drain()
        self.assertEqual(errors, ["bad"])

    async def test_cancel_all_stops_inflight_jobs(self) -> None:
        gate: GenerationGate[None] = GenerationGate("test")
        delivered: list[int] = []

        async def _forever() -> None:
            await asyncio.sleep(9999)

        gate.submit(_forever, lambda gen, res: delivered.append(gen))
        await asyncio.sleep(0)
        gate.cancel_all()
        await gate.drain()
        self.assertEqual(delivered, [])


class DebouncerTests(unittest.IsolatedAsyncioTestCase):
    """Validate trailing-edge debounce on an injectable clock."""

    async def test_only_last_call_fires(self) -> None:
        clock = ManualClock()
        debouncer = Debouncer(250, clock=clock)
        fired: list[str] = []
        debouncer.call(lambda: fired.append("a"))
        await clock.advance(200)
        debouncer.call(lambda: fired.append("b"))
        await clock.advance(200)
        self.assertEqual(fired, [])
        await clock.advance(50)
        self.assertEqual(fired, ["b"])

    async def test_cancel_prevents_firing(self) -> None:
        clock = ManualClock()
        debouncer = Debouncer(100, clock=clock)
        fired: list[bool] = []
        debouncer.call(lambda: fired.append(True))
        debouncer.cancel()
        await clock.advance(500)
        self.assertEqual(fired, [])


if __name__ == "__main__":
    unittest.main()
