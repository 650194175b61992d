"""Widget exports for the prompt_relay UI."""

from .composer_input import ComposerInput
from .status_bar import StatusBar
from .suggestion_menu import SuggestionMenu
from .transcript import ResponseEntry, TerminalPane, TranscriptView

__all__ = [
    "ComposerInput",
    "ResponseEntry",
    "StatusBar",
    "SuggestionMenu",
    "TerminalPane",
    "TranscriptView",
]
