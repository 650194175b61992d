"""Tests for the composer controller and its state transitions."""

from __future__ import annotations

import unittest

from fakes import DeferredSearch, ManualClock, StaticCommitSearch, StaticFileSearch

from prompt_relay.commands import SlashCommandRegistry
from prompt_relay.composer.context import DiagnosticRef
from prompt_relay.composer.controller import ComposerController, ComposerState
from prompt_relay.composer.suggestions import (
    DEFAULT_MENTION_ITEMS,
    FileRef,
    KeywordRef,
    SuggestionSource,
)
from prompt_relay.composer.triggers import NO_TRIGGER, DiagnosticPicker, MentionTrigger, SlashTrigger
from prompt_relay.images import ImageAttachment

DIAGNOSTICS = [
    DiagnosticRef(file="a.ts", line=5, column=2, severity="Error", message="oops"),
    DiagnosticRef(file="b.ts", line=1, column=1, severity="Warning", message="meh", source="eslint"),
]


class ComposerControllerTests(unittest.IsolatedAsyncioTestCase):
    """Validate typing, accepting and submitting through the controller."""

    def _build(self, files=None) -> ComposerController:  # noqa: ANN001
        self.clock = ManualClock()
        self.files = files or StaticFileSearch([FileRef("/src/app.py")])
        self.source = SuggestionSource(
            search_files=self.files,
            search_commits=StaticCommitSearch(),
            registry=SlashCommandRegistry(),
            clock=self.clock,
        )
        controller = ComposerController(self.source, list_diagnostics=lambda: list(DIAGNOSTICS))
        self.renders: list[ComposerState] = []
        controller.on_change(self.renders.append)
        return controller

    async def test_at_opens_keyword_menu(self) -> None:
        controller = self._build()
        controller.set_text("see @")
        self.assertEqual(controller.state.trigger, MentionTrigger(at_index=4, query=""))
        self.assertEqual(controller.state.suggestions, DEFAULT_MENTION_ITEMS)
        self.assertTrue(controller.state.menu_visible)
        self.assertTrue(self.renders)

    async def test_debounced_file_results_reach_menu(self) -> None:
        controller = self._build()
        controller.set_text("see @app")
        await self.clock.advance(250)
        self.assertEqual(self.files.queries, ["app"])
        self.assertEqual(controller.state.suggestions, (FileRef("/src/app.py"),))
        self.assertFalse(controller.state.loading)

    async def test_accept_file_replaces_token(self) -> None:
        controller = self._build()
        controller.set_text("Hello @fo")
        await self.clock.advance(250)
        self.assertTrue(controller.accept_selection())
        self.assertEqual(controller.state.buffer.content, "Hello @/src/app.py ")
        self.assertEqual(controller.state.buffer.cursor, len("Hello @/src/app.py "))
        self.assertIs(controller.state.trigger, NO_TRIGGER)
        self.assertEqual(controller.state.suggestions, ())

    async def test_accept_slash_command(self) -> None:
        controller = self._build()
        controller.set_text("/comp")
        self.assertIsInstance(controller.state.trigger, SlashTrigger)
        self.assertTrue(controller.accept_selection())
        self.assertEqual(controller.state.buffer.content, "/compact ")

    async def test_accept_selection_without_items(self) -> None:
        controller = self._build()
        controller.set_text("plain")
        self.assertFalse(controller.accept_selection())

    async def test_move_selection_wraps(self) -> None:
        controller = self._build()
        controller.set_text("@")
        count = len(DEFAULT_MENTION_ITEMS)
        controller.move_selection(-1)
        self.assertEqual(controller.state.selected_index, count - 1)
        controller.move_selection(1)
        self.assertEqual(controller.state.selected_index, 0)

    async def test_dismiss_discards_late_results(self) -> None:
        files = DeferredSearch()
        controller = self._build(files)
        controller.set_text("@app")
        await self.clock.advance(250)
        self.assertTrue(controller.state.loading)
        controller.dismiss_menu()
        files.resolve("app", [FileRef("/app")])
        await self.source.drain()
        self.assertEqual(controller.state.suggestions, ())
        self.assertFalse(controller.state.menu_visible)
        self.assertEqual(controller.state.buffer.content, "@app")

    async def test_problems_keyword_opens_picker(self) -> None:
        controller = self._build()
        controller.set_text("fix @pro")
        controller.accept(KeywordRef("problems"))
        self.assertTrue(controller.state.picker_open)
        self.assertEqual(controller.state.buffer.content, "fix ")
        self.assertEqual(controller.state.picker_choices, DIAGNOSTICS)

        controller.set_text("fix @")
        self.assertIsInstance(controller.state.trigger, DiagnosticPicker)
        self.assertEqual(controller.state.suggestions, ())

    async def test_confirm_diagnostics_attaches_selection(self) -> None:
        controller = self._build()
        controller.open_diagnostic_picker()
        controller.toggle_diagnostic(1)
        controller.toggle_diagnostic(7)
        controller.confirm_diagnostics()
        self.assertFalse(controller.state.picker_open)
        self.assertEqual(controller.state.pending_diagnostics, [("1", DIAGNOSTICS[1])])

        controller.open_diagnostic_picker()
        controller.select_all_diagnostics()
        controller.confirm_diagnostics()
        self.assertEqual(
            [diagnostic for _, diagnostic in controller.state.pending_diagnostics],
            [DIAGNOSTICS[1], DIAGNOSTICS[0]],
        )

    async def test_submit_returns_message_and_resets(self) -> None:
        controller = self._build()
        controller.open_diagnostic_picker()
        controller.toggle_diagnostic(0)
        controller.confirm_diagnostics()
        controller.set_text("  fix this  ")
        message = controller.submit()
        self.assertIsNotNone(message)
        self.assertEqual(message.text, "fix this")
        self.assertEqual(message.diagnostics, (DIAGNOSTICS[0],))
        self.assertEqual(controller.state.buffer.content, "")
        self.assertEqual(controller.state.pending_diagnostics, [])

    async def test_submit_empty_is_suppressed(self) -> None:
        controller = self._build()
        controller.set_text("   ")
        self.assertIsNone(controller.submit())
        self.assertEqual(controller.state.buffer.content, "   ")

    async def test_submit_image_only(self) -> None:
        controller = self._build()
        image = ImageAttachment(name="shot.png", origin="clipboard", data=b"png")
        controller.add_image(image)
        message = controller.submit()
        self.assertEqual(message.text, "")
        self.assertEqual(message.images, (image,))
        self.assertEqual(controller.state.pending_images, [])

    async def test_submit_blocked_while_picker_open(self) -> None:
        controller = self._build()
        controller.set_text("text")
        controller.open_diagnostic_picker()
        self.assertIsNone(controller.submit())

    async def test_insert_paths_at_cursor(self) -> None:
        controller = self._build()
        controller.set_text("look", 4)
        controller.insert_paths(["/a.py", "/b.py"])
        self.assertEqual(controller.state.buffer.content, "look @/a.py @/b.py ")
        self.assertIs(controller.state.trigger, NO_TRIGGER)

    async def test_remove_attachments(self) -> None:
        controller = self._build()
        controller.add_image(ImageAttachment(name="a.png", origin="drop", path="/tmp/a.png"))
        controller.remove_image(5)
        self.assertEqual(len(controller.state.pending_images), 1)
        controller.remove_image(0)
        self.assertEqual(controller.state.pending_images, [])


if __name__ == "__main__":
    unittest.main()
