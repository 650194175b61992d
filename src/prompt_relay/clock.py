"""Injectable time source for debounce and dispatch timing."""

from __future__ import annotations

import asyncio
import time
from typing import Protocol


class Clock(Protocol):
    """Minimal clock interface; all durations are in milliseconds."""

    def monotonic_ms(self) -> float: ...

    async def sleep(self, delay_ms: float) -> None: ...


class AsyncioClock:
    """Wall clock backed by ``time.monotonic`` and ``asyncio.sleep``."""

    def monotonic_ms(self) -> float:
        return time.monotonic() * 1000.0

    async def sleep(self, delay_ms: float) -> None:
        await asyncio.sleep(max(0.0, delay_ms) / 1000.0)


DEFAULT_CLOCK = AsyncioClock()
