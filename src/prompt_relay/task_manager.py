"""Structured lifecycle helpers for asyncio background tasks."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import logging
from typing import Any, Generic, TypeVar

from .clock import DEFAULT_CLOCK, Clock

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class TaskManager:
    """Track background asyncio tasks so shutdown can cancel them."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def add(self, task: asyncio.Task[Any]) -> None:
        """Register a task; it leaves the set on completion and failures are logged."""
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(self._log_exception)

    def spawn(self, coro: Awaitable[Any]) -> asyncio.Task[Any]:
        """Create a task from ``coro`` and track it."""
        task = asyncio.ensure_future(coro)
        self.add(task)
        return task

    def _log_exception(self, task: asyncio.Task[Any]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.warning(
                "task.exception",
                extra={
                    "event": "task.exception",
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )

    async def cancel_all(self) -> None:
        """Cancel every tracked task and await them all."""
        all_tasks = [task for task in self._tasks if not task.done()]
        for task in all_tasks:
            task.cancel()
        for task in all_tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()


class GenerationGate(Generic[T]):
    """Run async jobs where only the newest generation may deliver a result.

    Each :meth:`submit` bumps the generation counter.  A job that finishes
    after a newer one was submitted is discarded on completion; it is never
    interrupted, so providers see no cancellation.  Results and errors reach
    the callbacks only for the generation that is still current.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._generation = 0
        self._inflight: set[asyncio.Task[None]] = set()

    @property
    def generation(self) -> int:
        return self._generation

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    def invalidate(self) -> int:
        """Mark every in-flight job stale without starting a new one."""
        self._generation += 1
        return self._generation

    def submit(
        self,
        job: Callable[[], Awaitable[T]],
        on_result: Callable[[int, T], None],
        on_error: Callable[[int, BaseException], None] | None = None,
    ) -> int:
        """Start ``job`` as the newest generation and return its number."""
        generation = self.invalidate()

        async def _runner() -> None:
            try:
                result = await job()
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001 - routed to on_error below.
                if not self.is_current(generation):
                    return
                LOGGER.warning(
                    "task.generation.failed",
                    extra={
                        "event": "task.generation.failed",
                        "gate": self._name,
                        "generation": generation,
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    },
                )
                if on_error is not None:
                    on_error(generation, exc)
                return
            if not self.is_current(generation):
                LOGGER.debug(
                    "task.generation.stale",
                    extra={
                        "event": "task.generation.stale",
                        "gate": self._name,
                        "generation": generation,
                        "current": self._generation,
                    },
                )
                return
            on_result(generation, result)

        task = asyncio.get_running_loop().create_task(_runner())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return generation

    async def drain(self) -> None:
        """Await every in-flight job; used by tests and shutdown."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    def cancel_all(self) -> None:
        """Hard-cancel in-flight jobs (shutdown only)."""
        self.invalidate()
        for task in list(self._inflight):
            task.cancel()


class Debouncer:
    """Trailing-edge debounce: only the last call in a quiet window fires."""

    def __init__(
        self,
        delay_ms: float,
        *,
        clock: Clock = DEFAULT_CLOCK,
    ) -> None:
        self.delay_ms = delay_ms
        self._clock = clock
        self._pending: asyncio.Task[None] | None = None

    def call(self, action: Callable[[], None]) -> None:
        """(Re)start the timer; ``action`` runs once the window elapses."""
        self.cancel()

        async def _fire() -> None:
            await self._clock.sleep(self.delay_ms)
            action()

        self._pending = asyncio.get_running_loop().create_task(_fire())

    def cancel(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None
