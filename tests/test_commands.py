"""Tests for the slash-command registry and custom command scanning."""

from __future__ import annotations

from pathlib import Path
import tempfile
import unittest

from prompt_relay.commands import (
    BUILT_IN_COMMANDS,
    CustomCommandScanner,
    SlashCommand,
    SlashCommandRegistry,
)


class SlashCommandRegistryTests(unittest.TestCase):
    """Validate merging and filtering."""

    def test_builtins_are_always_present(self) -> None:
        registry = SlashCommandRegistry()
        registry.replace_custom([SlashCommand("/project:x", "X", "📄", is_custom=True)])
        registry.replace_custom([])
        self.assertEqual(registry.all(), list(BUILT_IN_COMMANDS))

    def test_custom_commands_deduplicated_by_name(self) -> None:
        registry = SlashCommandRegistry()
        shadow = SlashCommand("/help", "Custom help", "📄", is_custom=True)
        deploy = SlashCommand("/project:deploy", "Deploy", "📄", is_custom=True)
        registry.replace_custom([shadow, deploy, deploy])
        commands = registry.all()
        self.assertEqual([c.command for c in commands].count("/help"), 1)
        self.assertIn(deploy, commands)
        self.assertNotIn(shadow, commands)
        self.assertEqual(len(commands), len(BUILT_IN_COMMANDS) + 1)

    def test_filter_is_case_insensitive_on_name_and_description(self) -> None:
        registry = SlashCommandRegistry()
        self.assertEqual([c.command for c in registry.filter("VIM")], ["/vim"])
        self.assertIn("/cost", [c.command for c in registry.filter("token usage")])
        self.assertEqual(len(registry.filter("")), len(BUILT_IN_COMMANDS))

    def test_payload(self) -> None:
        command = SlashCommand("/user:notes", "Notes", "👤", is_custom=True)
        self.assertEqual(
            command.to_payload(),
            {"command": "/user:notes", "description": "Notes", "icon": "👤", "isCustom": True},
        )
        self.assertEqual(command.name, "user:notes")


class CustomCommandScannerTests(unittest.IsolatedAsyncioTestCase):
    """Validate discovery of project and user command files."""

    async def test_scan_project_and_user_directories(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            project = root / "workspace" / ".claude" / "commands"
            project.mkdir(parents=True)
            (project / "deploy.md").write_text("# Deploy the app\nSteps...", encoding="utf-8")
            (project / "readme.txt").write_text("ignored", encoding="utf-8")
            user = root / "user-commands"
            user.mkdir()
            (user / "notes.md").write_text("", encoding="utf-8")

            scanner = CustomCommandScanner(root / "workspace", user_dir=str(user))
            commands = await scanner.scan()

        self.assertEqual(
            commands,
            [
                SlashCommand("/project:deploy", "Deploy the app", "📄", is_custom=True),
                SlashCommand("/user:notes", "User command: notes", "👤", is_custom=True),
            ],
        )

    def test_missing_directories_yield_nothing(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            scanner = CustomCommandScanner(root, user_dir=str(root / "absent"))
            self.assertEqual(scanner.scan_sync(), [])


if __name__ == "__main__":
    unittest.main()
