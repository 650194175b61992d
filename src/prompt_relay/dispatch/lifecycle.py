"""Availability tracking for the terminal process that runs the agent CLI."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
import logging
from typing import Any, Protocol

from ..exceptions import LifecycleError
from ..state import ProcessState

LOGGER = logging.getLogger(__name__)


class TerminalHandle(Protocol):
    """What the relay needs from a terminal running the agent CLI."""

    name: str

    def show(self, preserve_focus: bool = True) -> None: ...

    def send_text(self, text: str, add_newline: bool = True) -> None: ...

    async def wait_ready(self) -> None: ...

    async def close(self) -> None: ...


TerminalFactory = Callable[[Sequence[str]], Awaitable[TerminalHandle]]
StatusCallback = Callable[[dict[str, Any]], None]


class ProcessLifecycleTracker:
    """``ABSENT -> CONNECTED -> CLOSED -> CONNECTED`` with explicit edges only.

    ``CONNECTED -> CLOSED`` happens only through :meth:`notify_closed`;
    leaving ``ABSENT`` or ``CLOSED`` happens only through :meth:`recreate`.
    Readers must consult :attr:`state` right before acting on the handle.
    """

    def __init__(self, factory: TerminalFactory, *, default_args: Sequence[str] = ()) -> None:
        self._factory = factory
        self._default_args = list(default_args)
        self._state = ProcessState.ABSENT
        self._handle: TerminalHandle | None = None
        self._status_callbacks: list[StatusCallback] = []
        self._recreate_lock = asyncio.Lock()

    def on_status_change(self, callback: StatusCallback) -> None:
        """Register a callback receiving the ``terminalStatus`` payload."""
        self._status_callbacks.append(callback)

    @property
    def state(self) -> ProcessState:
        return self._state

    @property
    def handle(self) -> TerminalHandle | None:
        return self._handle if self._state is ProcessState.CONNECTED else None

    def status(self) -> dict[str, Any]:
        connected = self._state is ProcessState.CONNECTED and self._handle is not None
        return {
            "isTerminalClosed": not connected,
            # Every terminal is started by the relay itself.
            "isConnectedToExistingTerminal": False,
            "terminalName": self._handle.name if connected and self._handle else "No Terminal",
        }

    def _set_state(self, new_state: ProcessState) -> None:
        previous = self._state
        self._state = new_state
        LOGGER.info(
            "lifecycle.transition",
            extra={
                "event": "lifecycle.transition",
                "from_state": previous.value,
                "to_state": new_state.value,
            },
        )
        payload = self.status()
        for callback in list(self._status_callbacks):
            try:
                callback(payload)
            except Exception as exc:  # noqa: BLE001 - listener errors must not break transitions.
                LOGGER.error(
                    "lifecycle.status_callback_failed",
                    extra={"event": "lifecycle.status_callback_failed", "error": str(exc)},
                )

    def notify_closed(self, handle: TerminalHandle | None = None) -> None:
        """External close notification; stale notifications are ignored."""
        if handle is not None and handle is not self._handle:
            return
        if self._state is not ProcessState.CONNECTED:
            return
        self._set_state(ProcessState.CLOSED)

    async def recreate(self, args: Sequence[str] | None = None) -> TerminalHandle:
        """Start a fresh terminal; the only way out of ``ABSENT`` or ``CLOSED``.

        ``args`` are appended to the configured default arguments.  Concurrent
        calls are serialized and the state is re-read once the lock is held, so
        a second caller never replaces a terminal the first one just started.
        """
        async with self._recreate_lock:
            if self._state is ProcessState.CONNECTED:
                raise LifecycleError("Terminal is still connected; close it before recreating")
            launch_args = [*self._default_args, *(args or ())]
            handle = await self._factory(launch_args)
            self._handle = handle
            self._set_state(ProcessState.CONNECTED)
            return handle

    async def relaunch(self, args: Sequence[str]) -> TerminalHandle:
        """Close any live terminal and start a new one with ``args``."""
        current = self._handle
        if self._state is ProcessState.CONNECTED and current is not None:
            await current.close()
            self.notify_closed(current)
        return await self.recreate(args)

    async def shutdown(self) -> None:
        if self._state is ProcessState.CONNECTED and self._handle is not None:
            handle = self._handle
            await handle.close()
            self.notify_closed(handle)
