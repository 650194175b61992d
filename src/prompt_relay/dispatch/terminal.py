"""Typed or bracketed-paste delivery of a message into the agent terminal.

The agent CLI decides between "typed" and "pasted" input from the raw
keystroke framing, and it offers no acknowledgement.  Delivery therefore
writes the text, waits a settle delay, presses Enter, waits again and then
asks the composer to take focus back a few times.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
import logging

from ..clock import DEFAULT_CLOCK, Clock
from ..state import DISPATCH_TRANSITIONS, DeliveryMode, DispatchPhase
from .lifecycle import TerminalHandle

LOGGER = logging.getLogger(__name__)

PASTE_START = "\x1b[200~"
PASTE_END = "\x1b[201~"
SHIFT_TAB = "\x1b[Z"
CODE_FENCE = "```"


def select_delivery_mode(text: str, length_threshold: int = 100) -> DeliveryMode:
    """Paste for multi-line, long or fenced text; typed otherwise."""
    if "\n" in text or len(text) > length_threshold or CODE_FENCE in text:
        return DeliveryMode.PASTE
    return DeliveryMode.TYPED


def frame_text(text: str, mode: DeliveryMode) -> str:
    if mode is DeliveryMode.PASTE:
        return f"{PASTE_START}{text}{PASTE_END}"
    return text


class TerminalDelivery:
    """Phase machine ``IDLE -> WRITING -> AWAITING_SETTLE -> EXECUTING ->
    RETURNING_FOCUS -> IDLE`` driven by an injectable clock.

    Deliveries are queued on a lock so two sends never interleave their
    writes on the same terminal.
    """

    def __init__(
        self,
        *,
        clock: Clock = DEFAULT_CLOCK,
        settle_delay_ms: float = 1000,
        focus_delay_ms: float = 700,
        focus_retry_offsets_ms: Sequence[float] = (0, 100, 200),
        paste_length_threshold: int = 100,
    ) -> None:
        self._clock = clock
        self.settle_delay_ms = settle_delay_ms
        self.focus_delay_ms = focus_delay_ms
        self.focus_retry_offsets_ms = sorted(focus_retry_offsets_ms)
        self.paste_length_threshold = paste_length_threshold
        self._phase = DispatchPhase.IDLE
        self._queue_lock = asyncio.Lock()
        self._waiting = 0
        self._on_return_focus: Callable[[], None] | None = None
        self._on_phase_change: Callable[[DispatchPhase], None] | None = None

    def on_return_focus(self, callback: Callable[[], None]) -> None:
        """Register the "focus the composer input" request."""
        self._on_return_focus = callback

    def on_phase_change(self, callback: Callable[[DispatchPhase], None]) -> None:
        self._on_phase_change = callback

    @property
    def phase(self) -> DispatchPhase:
        return self._phase

    @property
    def queued(self) -> int:
        """Deliveries waiting behind the one in progress."""
        return self._waiting

    def _enter(self, phase: DispatchPhase) -> None:
        if phase not in DISPATCH_TRANSITIONS[self._phase]:
            raise RuntimeError(f"Illegal dispatch transition {self._phase.value} -> {phase.value}")
        self._phase = phase
        if self._on_phase_change is not None:
            self._on_phase_change(phase)

    async def deliver(self, handle: TerminalHandle, text: str) -> DeliveryMode:
        """Write ``text`` into ``handle`` and press Enter once it settled."""
        self._waiting += 1
        async with self._queue_lock:
            self._waiting -= 1
            mode = select_delivery_mode(text, self.paste_length_threshold)
            LOGGER.info(
                "dispatch.terminal.deliver",
                extra={
                    "event": "dispatch.terminal.deliver",
                    "mode": mode.value,
                    "chars": len(text),
                    "terminal": handle.name,
                },
            )
            try:
                self._enter(DispatchPhase.WRITING)
                handle.show(preserve_focus=True)
                handle.send_text(frame_text(text, mode), add_newline=False)

                self._enter(DispatchPhase.AWAITING_SETTLE)
                await self._clock.sleep(self.settle_delay_ms)

                self._enter(DispatchPhase.EXECUTING)
                handle.send_text("", add_newline=True)

                self._enter(DispatchPhase.RETURNING_FOCUS)
                await self._clock.sleep(self.focus_delay_ms)
                await self._return_focus()
            finally:
                if self._phase is not DispatchPhase.IDLE:
                    self._enter(DispatchPhase.IDLE)
            return mode

    async def _return_focus(self) -> None:
        elapsed = 0.0
        for offset in self.focus_retry_offsets_ms:
            if offset > elapsed:
                await self._clock.sleep(offset - elapsed)
                elapsed = offset
            if self._on_return_focus is not None:
                self._on_return_focus()

    async def send_raw(self, handle: TerminalHandle, sequence: str) -> None:
        """Write a control sequence without disturbing a delivery in progress."""
        async with self._queue_lock:
            handle.send_text(sequence, add_newline=False)
