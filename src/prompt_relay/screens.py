"""Modal screens for the diagnostics picker and image path entry."""

from __future__ import annotations

from typing import Any

from textual.app import ComposeResult
from textual.containers import Container
from textual.screen import ModalScreen
from textual.widgets import Input, SelectionList, Static

from .composer.context import DiagnosticRef


def diagnostic_label(diagnostic: DiagnosticRef) -> str:
    return (
        f"[{diagnostic.severity}] {diagnostic.file}:{diagnostic.line}:{diagnostic.column}"
        f"  {diagnostic.message}"
    )


class DiagnosticPickerScreen(ModalScreen[list[int] | None]):
    """Multi-select list of workspace diagnostics.

    Dismisses with the checked indices, or ``None`` when cancelled.
    """

    CSS = """
    DiagnosticPickerScreen {
        align: center middle;
    }

    #problems-dialog {
        width: 100;
        max-height: 30;
        padding: 1 2;
        border: round $panel;
        background: $surface;
    }

    #problems-title {
        padding-bottom: 1;
        text-style: bold;
    }

    #problems-help {
        padding-top: 1;
    }
    """

    def __init__(self, diagnostics: list[DiagnosticRef], selected: set[int] | None = None) -> None:
        super().__init__()
        self._diagnostics = diagnostics
        self._selected = selected or set()

    def compose(self) -> ComposeResult:
        with Container(id="problems-dialog"):
            title = "Select problems" if self._diagnostics else "No problems in workspace"
            yield Static(title, id="problems-title")
            yield SelectionList[int](
                *(
                    (diagnostic_label(diagnostic), index, index in self._selected)
                    for index, diagnostic in enumerate(self._diagnostics)
                ),
                id="problems-options",
            )
            yield Static(
                "Space to toggle | a to select all | Enter to attach | Esc to cancel",
                id="problems-help",
            )

    def on_mount(self) -> None:
        self.query_one("#problems-options", SelectionList).focus()

    def on_key(self, event: Any) -> None:  # noqa: ANN401
        key = str(getattr(event, "key", "")).lower()
        options = self.query_one("#problems-options", SelectionList)
        if key == "escape":
            event.stop()
            self.dismiss(None)
        elif key == "enter":
            event.stop()
            self.dismiss(sorted(options.selected))
        elif key == "a":
            event.stop()
            if len(options.selected) == len(self._diagnostics):
                options.deselect_all()
            else:
                options.select_all()


class ImagePathScreen(ModalScreen[str | None]):
    """Fallback modal for collecting an image path when no native dialog exists."""

    CSS = """
    ImagePathScreen {
        align: center middle;
    }

    #image-path-dialog {
        width: 60;
        padding: 1 3;
        border: round $panel;
        background: $surface;
    }

    #image-path-title {
        padding-bottom: 1;
        text-style: bold;
    }

    #image-path-input {
        width: 100%;
        margin: 1 0;
    }

    #image-path-help {
        padding-top: 1;
        text-align: center;
    }
    """

    def compose(self) -> ComposeResult:
        with Container(id="image-path-dialog"):
            yield Static("Attach image", id="image-path-title")
            yield Input(
                placeholder="Enter absolute or relative image path...",
                id="image-path-input",
            )
            yield Static("Enter to confirm  |  Esc to cancel", id="image-path-help")

    def on_mount(self) -> None:
        self.query_one("#image-path-input", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id != "image-path-input":
            return
        value = event.value.strip()
        self.dismiss(value if value else None)

    def on_key(self, event: Any) -> None:  # noqa: ANN401
        if str(getattr(event, "key", "")).lower() == "escape":
            self.dismiss(None)
