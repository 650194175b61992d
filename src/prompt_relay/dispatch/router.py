"""Route an assembled message to the terminal or the direct session."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
import logging
from typing import Literal

from ..composer.context import ContextAssembler, OutboundMessage
from ..exceptions import TerminalTransportError
from ..state import DeliveryMode, ProcessState, SessionMode
from .direct import DirectSession
from .lifecycle import ProcessLifecycleTracker, TerminalHandle
from .terminal import SHIFT_TAB, TerminalDelivery

LOGGER = logging.getLogger(__name__)

LaunchVariant = Literal["new", "continue", "history"]
LAUNCH_ARGS: dict[str, list[str]] = {"new": [], "continue": ["-c"], "history": ["-r"]}


@dataclass(frozen=True)
class DispatchOutcome:
    session_mode: SessionMode
    payload: str
    delivery_mode: DeliveryMode | None = None
    recreated: bool = False


class DispatchRouter:
    """Send one message per call through the transport chosen at send time."""

    def __init__(
        self,
        *,
        assembler: ContextAssembler,
        lifecycle: ProcessLifecycleTracker,
        delivery: TerminalDelivery,
        direct: DirectSession,
        mode: SessionMode = SessionMode.TERMINAL,
    ) -> None:
        self.assembler = assembler
        self.lifecycle = lifecycle
        self.delivery = delivery
        self.direct = direct
        self._mode = mode
        # One terminal send or launch at a time: state read, recreate and delivery.
        self._terminal_lock = asyncio.Lock()
        self._on_warning: Callable[[str], None] | None = None
        self._on_mode_change: Callable[[SessionMode], None] | None = None

    def on_warning(self, callback: Callable[[str], None]) -> None:
        self._on_warning = callback

    def on_mode_change(self, callback: Callable[[SessionMode], None]) -> None:
        self._on_mode_change = callback

    @property
    def mode(self) -> SessionMode:
        return self._mode

    def set_mode(self, mode: SessionMode) -> None:
        if mode is self._mode:
            return
        self._mode = mode
        LOGGER.info("dispatch.mode", extra={"event": "dispatch.mode", "mode": mode.value})
        if self._on_mode_change is not None:
            self._on_mode_change(mode)

    def _warn(self, message: str) -> None:
        if self._on_warning is not None:
            self._on_warning(message)

    def _payload_for(self, message: OutboundMessage) -> str | None:
        stripped = message.text.strip()
        # The CLI parses slash commands itself; context blocks would break them.
        if stripped.startswith("/") and not message.images and not message.diagnostics:
            return stripped
        result = self.assembler.assemble(message)
        if result is None:
            return None
        if result.warning:
            self._warn(result.warning)
        return result.payload

    async def send(self, message: OutboundMessage) -> DispatchOutcome | None:
        """Assemble and deliver ``message``; ``None`` when nothing was sent."""
        mode = self._mode
        payload = self._payload_for(message)
        if payload is None:
            LOGGER.debug("dispatch.empty", extra={"event": "dispatch.empty"})
            return None

        if mode is SessionMode.DIRECT:
            await self.direct.send(payload)
            return DispatchOutcome(session_mode=mode, payload=payload)

        delivery_mode, recreated = await self._send_terminal(payload)
        return DispatchOutcome(
            session_mode=mode,
            payload=payload,
            delivery_mode=delivery_mode,
            recreated=recreated,
        )

    async def _fresh_handle(self) -> TerminalHandle:
        handle = await self.lifecycle.recreate()
        await handle.wait_ready()
        return handle

    async def _send_terminal(self, payload: str) -> tuple[DeliveryMode, bool]:
        async with self._terminal_lock:
            return await self._send_terminal_locked(payload)

    async def _send_terminal_locked(self, payload: str) -> tuple[DeliveryMode, bool]:
        recreated = False
        handle = self.lifecycle.handle
        if self.lifecycle.state is not ProcessState.CONNECTED or handle is None:
            LOGGER.info(
                "dispatch.recreate",
                extra={"event": "dispatch.recreate", "state": self.lifecycle.state.value},
            )
            handle = await self._fresh_handle()
            recreated = True
        try:
            return await self.delivery.deliver(handle, payload), recreated
        except TerminalTransportError as exc:
            if recreated:
                raise
            # The terminal died between the state check and the write.
            LOGGER.warning(
                "dispatch.write_failed",
                extra={"event": "dispatch.write_failed", "error": str(exc)},
            )
            self.lifecycle.notify_closed(handle)
            handle = await self._fresh_handle()
            return await self.delivery.deliver(handle, payload), True

    async def pause(self) -> None:
        """Stop the running direct computation; terminal mode ignores it."""
        if self._mode is SessionMode.DIRECT:
            await self.direct.pause()

    async def clear_direct(self) -> None:
        await self.direct.reset()

    async def cycle_agent_mode(self) -> bool:
        """Send Shift+Tab so the CLI cycles its own input mode."""
        handle = self.lifecycle.handle
        if handle is None:
            self._warn("No active Claude terminal to toggle mode in.")
            return False
        await self.delivery.send_raw(handle, SHIFT_TAB)
        return True

    async def launch(self, variant: LaunchVariant) -> TerminalHandle:
        """Start the CLI fresh, continuing the last session, or from history."""
        async with self._terminal_lock:
            handle = await self.lifecycle.relaunch(LAUNCH_ARGS[variant])
        handle.show(preserve_focus=False)
        return handle
