"""Shared enums describing transport, delivery and process state."""

from __future__ import annotations

from enum import Enum


class SessionMode(str, Enum):
    """Which transport a send goes through."""

    TERMINAL = "TERMINAL"
    DIRECT = "DIRECT"


class DeliveryMode(str, Enum):
    """How text is framed when written into the terminal."""

    TYPED = "TYPED"
    PASTE = "PASTE"


class ProcessState(str, Enum):
    """Availability of the terminal process that runs the agent CLI."""

    ABSENT = "ABSENT"
    CONNECTED = "CONNECTED"
    CLOSED = "CLOSED"


class DispatchPhase(str, Enum):
    """Phases of a single terminal delivery."""

    IDLE = "IDLE"
    WRITING = "WRITING"
    AWAITING_SETTLE = "AWAITING_SETTLE"
    EXECUTING = "EXECUTING"
    RETURNING_FOCUS = "RETURNING_FOCUS"


DISPATCH_TRANSITIONS: dict[DispatchPhase, frozenset[DispatchPhase]] = {
    DispatchPhase.IDLE: frozenset({DispatchPhase.WRITING}),
    DispatchPhase.WRITING: frozenset({DispatchPhase.AWAITING_SETTLE, DispatchPhase.IDLE}),
    DispatchPhase.AWAITING_SETTLE: frozenset({DispatchPhase.EXECUTING, DispatchPhase.IDLE}),
    DispatchPhase.EXECUTING: frozenset({DispatchPhase.RETURNING_FOCUS, DispatchPhase.IDLE}),
    DispatchPhase.RETURNING_FOCUS: frozenset({DispatchPhase.IDLE}),
}
