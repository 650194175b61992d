"""Classify the composer text into the inline trigger that is active."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class NoTrigger:
    """Nothing to suggest."""


@dataclass(frozen=True)
class MentionTrigger:
    """``@query`` being typed; ``at_index`` is the offset of the ``@``."""

    at_index: int
    query: str


@dataclass(frozen=True)
class SlashTrigger:
    """``/query`` typed at the start of the current line."""

    line_start: int
    query: str


@dataclass(frozen=True)
class DiagnosticPicker:
    """Modal diagnostics selection, opened from the ``problems`` keyword."""


TriggerState = NoTrigger | MentionTrigger | SlashTrigger | DiagnosticPicker

NO_TRIGGER = NoTrigger()


def _has_whitespace(span: str) -> bool:
    return any(ch.isspace() for ch in span)


def detect_trigger(text: str, cursor: int) -> NoTrigger | MentionTrigger | SlashTrigger:
    """Return the trigger active at ``cursor``.

    A slash command on the current line wins over a mention.  Any whitespace
    between the trigger character and the cursor, newlines included,
    cancels the trigger.
    """
    if not 0 <= cursor <= len(text):
        raise ValueError(f"cursor {cursor} outside text of length {len(text)}")

    line_start = text.rfind("\n", 0, cursor) + 1
    line = text[line_start:cursor]
    if line.startswith("/") and not _has_whitespace(line):
        return SlashTrigger(line_start=line_start, query=line[1:])

    at_index = text.rfind("@", 0, cursor)
    if at_index == -1:
        return NO_TRIGGER
    query = text[at_index + 1 : cursor]
    if _has_whitespace(query):
        return NO_TRIGGER
    return MentionTrigger(at_index=at_index, query=query)


class TriggerDetector:
    """Stateful wrapper that honours the modal diagnostic picker."""

    def __init__(self) -> None:
        self._picker_open = False

    @property
    def picker_open(self) -> bool:
        return self._picker_open

    def open_picker(self) -> DiagnosticPicker:
        self._picker_open = True
        return DiagnosticPicker()

    def close_picker(self) -> None:
        self._picker_open = False

    def detect(self, text: str, cursor: int) -> TriggerState:
        if self._picker_open:
            return DiagnosticPicker()
        return detect_trigger(text, cursor)
