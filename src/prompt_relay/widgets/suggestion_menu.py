"""Inline popup listing mention and slash-command candidates."""

from __future__ import annotations

from rich.text import Text
from textual.widgets import OptionList

from ..composer.suggestions import (
    CommitRef,
    FileRef,
    KeywordRef,
    SlashCommandRef,
    SuggestionItem,
)

_KEYWORD_HINTS: dict[str, str] = {
    "problems": "Attach workspace diagnostics",
    "terminal": "Reference terminal output",
    "git-changes": "Reference uncommitted changes",
}


def item_label(item: SuggestionItem) -> Text:
    """Render one candidate as a two-column rich label."""
    label = Text()
    match item:
        case FileRef(path=path, kind=kind):
            label.append("📁 " if kind == "folder" else "📄 ")
            label.append(path)
        case CommitRef(subject=subject, author=author, date=date) as commit:
            label.append(commit.short_hash, style="bold yellow")
            label.append(f"  {subject}")
            label.append(f"  {author} {date}", style="dim")
        case KeywordRef(keyword=keyword):
            label.append(f"@{keyword}", style="bold")
            label.append(f"  {_KEYWORD_HINTS.get(keyword, '')}", style="dim")
        case SlashCommandRef(name=name, description=description, icon=icon):
            label.append(f"{icon} {name}" if icon else name, style="bold")
            label.append(f"  {description}", style="dim")
    return label


class SuggestionMenu(OptionList):
    """Show candidates; the composer controller owns the highlighted index."""

    DEFAULT_CSS = """
    SuggestionMenu {
        max-height: 10;
        border: round $panel;
        background: $surface;
    }

    SuggestionMenu.hidden {
        display: none;
    }
    """

    def show_items(
        self, items: tuple[SuggestionItem, ...], selected: int, *, loading: bool = False
    ) -> None:
        self.clear_options()
        if loading and not items:
            self.add_option(Text("Searching…", style="dim italic"))
        else:
            self.add_options([item_label(item) for item in items])
            if items:
                self.highlighted = selected
        self.set_class(False, "hidden")

    def hide(self) -> None:
        self.clear_options()
        self.set_class(True, "hidden")
