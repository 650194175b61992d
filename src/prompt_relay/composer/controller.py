"""Single owner of composer state: text, trigger, suggestions, attachments."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
import logging

from ..images import ImageAttachment
from .buffer import TextBuffer
from .context import DiagnosticRef, OutboundMessage
from .mentions import InsertResult, insert_mention, insert_paths, insert_slash_command
from .suggestions import (
    KeywordRef,
    SlashCommandRef,
    SuggestionItem,
    SuggestionResult,
    SuggestionSource,
    mention_value,
)
from .triggers import (
    NO_TRIGGER,
    DiagnosticPicker,
    MentionTrigger,
    SlashTrigger,
    TriggerDetector,
    TriggerState,
)

LOGGER = logging.getLogger(__name__)

PROBLEMS_KEYWORD = "problems"


@dataclass
class ComposerState:
    """Everything the composer UI renders; mutated only by the controller."""

    buffer: TextBuffer = field(default_factory=TextBuffer)
    trigger: TriggerState = NO_TRIGGER
    suggestions: tuple[SuggestionItem, ...] = ()
    selected_index: int = 0
    loading: bool = False
    pending_images: list[ImageAttachment] = field(default_factory=list)
    pending_diagnostics: list[tuple[str, DiagnosticRef]] = field(default_factory=list)
    picker_choices: list[DiagnosticRef] = field(default_factory=list)
    picker_selected: set[int] = field(default_factory=set)

    @property
    def menu_visible(self) -> bool:
        return isinstance(self.trigger, (MentionTrigger, SlashTrigger)) and (
            bool(self.suggestions) or self.loading
        )

    @property
    def picker_open(self) -> bool:
        return isinstance(self.trigger, DiagnosticPicker)


class ComposerController:
    """Apply input events to :class:`ComposerState` and produce messages.

    Input handlers run synchronously; suggestion results arrive through the
    :class:`SuggestionSource` callback and only ever replace the candidate
    list, never the text.
    """

    def __init__(
        self,
        suggestions: SuggestionSource,
        *,
        list_diagnostics: Callable[[], list[DiagnosticRef]] = list,
    ) -> None:
        self.state = ComposerState()
        self._detector = TriggerDetector()
        self._suggestions = suggestions
        self._list_diagnostics = list_diagnostics
        self._listeners: list[Callable[[ComposerState], None]] = []
        suggestions.on_results(self._apply_results)

    def on_change(self, callback: Callable[[ComposerState], None]) -> None:
        self._listeners.append(callback)

    def _notify(self) -> None:
        for callback in list(self._listeners):
            callback(self.state)

    # -- text input --------------------------------------------------------

    def set_text(self, text: str, cursor: int | None = None) -> None:
        """Keystroke, paste or programmatic edit of the whole buffer."""
        self.state.buffer.set(text, cursor)
        self._refresh_trigger()

    def move_cursor(self, cursor: int) -> None:
        self.state.buffer.move_cursor(cursor)
        self._refresh_trigger()

    def _refresh_trigger(self) -> None:
        buffer = self.state.buffer
        trigger = self._detector.detect(buffer.content, buffer.cursor)
        if trigger != self.state.trigger:
            self.state.selected_index = 0
        self.state.trigger = trigger
        if isinstance(trigger, DiagnosticPicker):
            self._notify()
            return
        if not isinstance(trigger, (MentionTrigger, SlashTrigger)):
            self.state.suggestions = ()
            self.state.loading = False
        self._suggestions.update(trigger)
        self.state.loading = self._suggestions.loading
        self._notify()

    def _apply_results(self, result: SuggestionResult) -> None:
        if not isinstance(self.state.trigger, (MentionTrigger, SlashTrigger)):
            return
        if result.items != self.state.suggestions:
            self.state.selected_index = 0
        self.state.suggestions = result.items
        self.state.loading = result.loading
        self._notify()

    # -- suggestion menu -----------------------------------------------------

    def move_selection(self, delta: int) -> None:
        count = len(self.state.suggestions)
        if not count:
            return
        self.state.selected_index = (self.state.selected_index + delta) % count
        self._notify()

    def dismiss_menu(self) -> None:
        self._suggestions.reset()
        self.state.trigger = NO_TRIGGER
        self.state.suggestions = ()
        self.state.loading = False
        self._notify()

    def accept_selection(self, index: int | None = None) -> bool:
        """Insert the highlighted (or ``index``) candidate; True if handled."""
        items = self.state.suggestions
        position = self.state.selected_index if index is None else index
        if not 0 <= position < len(items):
            return False
        self.accept(items[position])
        return True

    def accept(self, item: SuggestionItem) -> None:
        buffer = self.state.buffer
        match item:
            case KeywordRef(keyword=keyword) if keyword == PROBLEMS_KEYWORD:
                self.open_diagnostic_picker()
                return
            case SlashCommandRef(name=name):
                result = insert_slash_command(buffer.content, buffer.cursor, name)
            case _:
                result = insert_mention(buffer.content, buffer.cursor, mention_value(item))
        self._apply_insert(result)

    def _apply_insert(self, result: InsertResult) -> None:
        self.state.buffer.set(result.text, result.cursor)
        self._suggestions.reset()
        self._refresh_trigger()

    # -- diagnostics picker --------------------------------------------------

    def open_diagnostic_picker(self) -> None:
        """Open the modal picker; the partially typed ``@`` token is removed."""
        buffer = self.state.buffer
        trigger = self.state.trigger
        if isinstance(trigger, MentionTrigger):
            end = buffer.cursor
            while end < len(buffer.content) and not buffer.content[end].isspace():
                end += 1
            buffer.set(buffer.content[: trigger.at_index] + buffer.content[end:], trigger.at_index)
        self._suggestions.reset()
        self.state.trigger = self._detector.open_picker()
        self.state.suggestions = ()
        self.state.loading = False
        self.state.picker_choices = list(self._list_diagnostics())
        self.state.picker_selected = set()
        self._notify()

    def toggle_diagnostic(self, index: int) -> None:
        if not 0 <= index < len(self.state.picker_choices):
            return
        self.state.picker_selected ^= {index}
        self._notify()

    def select_all_diagnostics(self, selected: bool = True) -> None:
        self.state.picker_selected = (
            set(range(len(self.state.picker_choices))) if selected else set()
        )
        self._notify()

    def confirm_diagnostics(self) -> None:
        """Add the checked diagnostics to the pending attachments."""
        known = {diagnostic for _, diagnostic in self.state.pending_diagnostics}
        for index in sorted(self.state.picker_selected):
            diagnostic = self.state.picker_choices[index]
            if diagnostic not in known:
                self.state.pending_diagnostics.append((str(index), diagnostic))
                known.add(diagnostic)
        self.close_diagnostic_picker()

    def close_diagnostic_picker(self) -> None:
        self._detector.close_picker()
        self.state.picker_choices = []
        self.state.picker_selected = set()
        self._refresh_trigger()

    def remove_diagnostic(self, position: int) -> None:
        if 0 <= position < len(self.state.pending_diagnostics):
            del self.state.pending_diagnostics[position]
            self._notify()

    def insert_paths(self, paths: list[str]) -> None:
        """Insert dropped or pasted paths as mentions at the cursor."""
        buffer = self.state.buffer
        self._apply_insert(insert_paths(buffer.content, buffer.cursor, paths))

    # -- images --------------------------------------------------------------

    def add_image(self, image: ImageAttachment) -> None:
        self.state.pending_images.append(image)
        self._notify()

    def remove_image(self, position: int) -> None:
        if 0 <= position < len(self.state.pending_images):
            del self.state.pending_images[position]
            self._notify()

    # -- submit --------------------------------------------------------------

    def submit(self) -> OutboundMessage | None:
        """Freeze the composed message and reset the composer.

        Returns ``None`` (and keeps the composer untouched) when there is no
        text, no image and no diagnostic to send.
        """
        state = self.state
        if state.picker_open:
            return None
        message = OutboundMessage(
            text=state.buffer.content.strip(),
            images=tuple(state.pending_images),
            diagnostics=tuple(diagnostic for _, diagnostic in state.pending_diagnostics),
        )
        if not message.text and not message.images and not message.diagnostics:
            return None
        state.buffer.clear()
        state.pending_images.clear()
        state.pending_diagnostics.clear()
        self._suggestions.reset()
        self._refresh_trigger()
        LOGGER.debug(
            "composer.submit",
            extra={
                "event": "composer.submit",
                "chars": len(message.text),
                "images": len(message.images),
                "diagnostics": len(message.diagnostics),
            },
        )
        return message
