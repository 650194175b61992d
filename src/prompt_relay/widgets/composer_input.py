"""Multi-line composer that hands menu keys and submissions to the app."""

from __future__ import annotations

from pathlib import Path
from typing import Any, ClassVar
from urllib.parse import unquote, urlparse

from textual import events
from textual.binding import Binding
from textual.message import Message
from textual.widgets import TextArea

MENU_KEYS = frozenset({"up", "down", "tab", "enter", "escape"})
NEWLINE_KEYS = frozenset({"shift+enter", "ctrl+j", "alt+enter"})


def parse_dropped_paths(text: str) -> list[str]:
    """Return paths when every pasted line is a file URI or an existing path."""
    lines = [line.strip().strip("'\"") for line in text.splitlines() if line.strip()]
    if not lines:
        return []
    paths: list[str] = []
    for line in lines:
        parsed = urlparse(line)
        if parsed.scheme == "file":
            paths.append(unquote(parsed.path))
            continue
        candidate = Path(line).expanduser()
        if not candidate.is_absolute() or not candidate.exists():
            return []
        paths.append(str(candidate))
    return paths


class ComposerInput(TextArea):
    """TextArea that reports its text and cursor as a flat offset."""

    BINDINGS: ClassVar[list[Binding]] = [
        Binding("shift+enter,ctrl+j,alt+enter", "insert_newline", "New Line", show=False, priority=True),
    ]

    class Edited(Message):
        """Text or cursor changed through user input."""

        def __init__(self, text: str, cursor: int) -> None:
            self.text = text
            self.cursor = cursor
            super().__init__()

    class MenuKey(Message):
        """A navigation key pressed while the suggestion menu is open."""

        def __init__(self, key: str) -> None:
            self.key = key
            super().__init__()

    class Submitted(Message):
        """Plain Enter with no open menu."""

    class PathsDropped(Message):
        """A paste whose lines are all file paths or ``file://`` URIs."""

        def __init__(self, paths: list[str]) -> None:
            self.paths = paths
            super().__init__()

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._menu_active = False

    def set_menu_active(self, active: bool) -> None:
        self._menu_active = active

    @property
    def cursor_offset(self) -> int:
        return self.document.get_index_from_location(self.cursor_location)  # type: ignore[attr-defined]

    def sync(self, text: str, cursor: int) -> None:
        """Mirror controller state; the echoed ``Edited`` matches it and is ignored."""
        if text != self.text:
            self.text = text
        if cursor != self.cursor_offset:
            self.move_cursor(self.document.get_location_from_index(cursor))  # type: ignore[attr-defined]

    def action_insert_newline(self) -> None:
        self.insert("\n")

    async def _on_key(self, event: events.Key) -> None:
        if event.key in NEWLINE_KEYS:
            event.prevent_default()
            event.stop()
            self.insert("\n")
            return
        if self._menu_active and event.key in MENU_KEYS:
            event.prevent_default()
            event.stop()
            self.post_message(self.MenuKey(event.key))
            return
        if event.key == "enter":
            event.prevent_default()
            event.stop()
            self.post_message(self.Submitted())
            return
        await super()._on_key(event)

    async def _on_paste(self, event: events.Paste) -> None:
        paths = parse_dropped_paths(event.text)
        if not paths:
            return
        event.prevent_default()
        event.stop()
        self.post_message(self.PathsDropped(paths))

    def _report(self) -> None:
        self.post_message(self.Edited(self.text, self.cursor_offset))

    def on_text_area_changed(self, event: TextArea.Changed) -> None:
        self._report()

    def on_text_area_selection_changed(self, event: TextArea.SelectionChanged) -> None:
        self._report()
