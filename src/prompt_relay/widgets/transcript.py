"""Scrollable views for direct-mode responses and terminal output."""

from __future__ import annotations

from typing import Any

from rich.markdown import Markdown
from rich.text import Text
from textual.containers import VerticalScroll
from textual.widgets import RichLog, Static

from ..composer.mentions import find_mentions
from ..dispatch.direct import DISPLAY_NAMES

MENTION_STYLE = "bold cyan"


def highlight_mentions(content: str) -> Text:
    """Render plain text with every well-formed mention styled."""
    text = Text(content)
    for span in find_mentions(content):
        text.stylize(MENTION_STYLE, span.start, span.end)
    return text


class ResponseEntry(Static):
    """One ``directModeResponse`` rendered with its type as a header."""

    DEFAULT_CSS = """
    ResponseEntry {
        height: auto;
        margin: 1 0 0 0;
        padding: 0 1;
        border-left: solid $panel;
    }
    ResponseEntry.response-user_input {
        border-left: solid $primary;
    }
    ResponseEntry.response-error {
        border-left: solid $error;
    }
    """

    def __init__(self, payload: dict[str, Any], **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.response_type = str(payload.get("type", ""))
        self.add_class(f"response-{self.response_type}")
        self.set_payload(payload)

    def set_payload(self, payload: dict[str, Any]) -> None:
        content = str(payload.get("content") or "")
        header = DISPLAY_NAMES.get(self.response_type, self.response_type.title())
        if self.response_type in {"assistant", "result"}:
            self.update(Markdown(f"**{header}**\n\n{content}"))
        else:
            text = Text(header, style="bold")
            text.append("\n")
            text.append_text(highlight_mentions(content))
            self.update(text)


class TranscriptView(VerticalScroll):
    """A scrollable container that hosts direct-mode responses."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._last_assistant: ResponseEntry | None = None

    async def add_response(self, payload: dict[str, Any]) -> ResponseEntry:
        """Mount a response, or replace the last assistant one on ``isUpdate``."""
        if payload.get("isUpdate") and self._last_assistant is not None:
            self._last_assistant.set_payload(payload)
            return self._last_assistant
        entry = ResponseEntry(payload)
        await self.mount(entry)
        if entry.response_type == "assistant":
            self._last_assistant = entry
        self.scroll_end(animate=False)
        return entry

    async def clear(self) -> None:
        self._last_assistant = None
        await self.remove_children()


class TerminalPane(RichLog):
    """Append-only view of the agent CLI's terminal output."""

    DEFAULT_CSS = """
    TerminalPane {
        background: $background;
    }
    TerminalPane.hidden {
        display: none;
    }
    """

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(wrap=True, markup=False, highlight=False, **kwargs)
        self._partial = ""

    def feed(self, chunk: str) -> None:
        """Write complete lines; a trailing partial line waits for the next chunk."""
        data = (self._partial + chunk).replace("\r\n", "\n")
        lines = data.split("\n")
        self._partial = lines.pop()
        for line in lines:
            self.write(Text.from_ansi(line.rsplit("\r", 1)[-1]))
