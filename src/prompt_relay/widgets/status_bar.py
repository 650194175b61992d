"""Status bar widget for terminal, session and delivery state."""

from __future__ import annotations

from typing import Any

from textual.app import ComposeResult
from textual.widgets import Label, Static


class StatusBar(Static):
    """Render compact runtime status information.

    Segments (left to right):
        🟢 Claude Code  |  Mode: terminal  |  idle  |  📎 2
    """

    DEFAULT_CSS = """
    StatusBar {
        layout: horizontal;
        height: auto;
    }
    StatusBar Label {
        margin-right: 1;
    }
    StatusBar #status_attachments {
        color: $text-muted;
    }
    """

    def compose(self) -> ComposeResult:
        """Compose child labels for each status segment."""
        yield Label("🔴 No Terminal", id="status_terminal")
        yield Label("|", id="status_sep1")
        yield Label("Mode: terminal", id="status_mode")
        yield Label("|", id="status_sep2")
        yield Label("idle", id="status_activity")
        yield Label("|", id="status_sep3")
        yield Label("", id="status_attachments")

    def on_mount(self) -> None:
        """Cache label references once after the DOM is ready."""
        self._lbl_terminal = self.query_one("#status_terminal", Label)
        self._lbl_mode = self.query_one("#status_mode", Label)
        self._lbl_activity = self.query_one("#status_activity", Label)
        self._lbl_attachments = self.query_one("#status_attachments", Label)
        self._sep_attachments = self.query_one("#status_sep3", Label)

    def set_terminal(self, status: dict[str, Any]) -> None:
        """Apply a ``terminalStatus`` payload."""
        closed = bool(status.get("isTerminalClosed", True))
        icon = "🔴" if closed else "🟢"
        name = str(status.get("terminalName") or "No Terminal")
        suffix = " (existing)" if status.get("isConnectedToExistingTerminal") else ""
        self._lbl_terminal.update(f"{icon} {name}{suffix}")

    def set_mode(self, direct: bool) -> None:
        self._lbl_mode.update(f"Mode: {'direct' if direct else 'terminal'}")

    def set_activity(self, text: str) -> None:
        self._lbl_activity.update(text or "idle")

    def set_attachments(self, images: int, diagnostics: int) -> None:
        parts: list[str] = []
        if images:
            parts.append(f"🖼 {images}")
        if diagnostics:
            parts.append(f"⚠ {diagnostics}")
        text = "  ".join(parts)
        self._lbl_attachments.update(text)
        # Hide the segment and its separator when nothing is attached.
        visible = bool(text)
        self._lbl_attachments.display = visible
        self._sep_attachments.display = visible
