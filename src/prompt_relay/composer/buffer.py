"""Raw composer text plus a cursor that always stays inside it."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class TextBuffer:
    """Editable text with a flat character-offset cursor."""

    content: str = ""
    cursor: int = 0

    def __post_init__(self) -> None:
        self._check(self.content, self.cursor)

    @staticmethod
    def _check(content: str, cursor: int) -> None:
        if not 0 <= cursor <= len(content):
            raise ValueError(
                f"cursor {cursor} outside buffer of length {len(content)}"
            )

    def set(self, content: str, cursor: int | None = None) -> None:
        """Replace the content; the cursor defaults to the end of the text."""
        new_cursor = len(content) if cursor is None else cursor
        self._check(content, new_cursor)
        self.content = content
        self.cursor = new_cursor

    def move_cursor(self, cursor: int) -> None:
        self._check(self.content, cursor)
        self.cursor = cursor

    def clear(self) -> None:
        self.content = ""
        self.cursor = 0
