"""Slash-command registry: fixed built-ins plus scanned custom commands.

Custom commands are Markdown files:
- ``<workspace>/.claude/commands/<name>.md`` becomes ``/project:<name>``
- ``~/.claude/commands/<name>.md`` becomes ``/user:<name>``

The first line of the file (leading ``#`` removed) is the description.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Any

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlashCommand:
    """One registry entry; ``command`` keeps its leading ``/``."""

    command: str
    description: str
    icon: str
    is_custom: bool = False

    @property
    def name(self) -> str:
        return self.command.lstrip("/")

    def to_payload(self) -> dict[str, Any]:
        return {
            "command": self.command,
            "description": self.description,
            "icon": self.icon,
            "isCustom": self.is_custom,
        }


BUILT_IN_COMMANDS: tuple[SlashCommand, ...] = (
    SlashCommand("/bug", "Report bugs (sends conversation to Anthropic)", "🐛"),
    SlashCommand("/clear", "Clear conversation history", "🗑️"),
    SlashCommand("/compact", "Compact conversation with optional focus instructions", "📦"),
    SlashCommand("/config", "View/modify configuration", "⚙️"),
    SlashCommand("/cost", "Show token usage statistics", "💰"),
    SlashCommand("/doctor", "Checks the health of your Claude Code installation", "🏥"),
    SlashCommand("/help", "Get usage help", "❓"),
    SlashCommand("/init", "Initialize project with CLAUDE.md guide", "🚀"),
    SlashCommand("/login", "Switch Anthropic accounts", "🔐"),
    SlashCommand("/logout", "Sign out from your Anthropic account", "🚪"),
    SlashCommand("/memory", "Edit CLAUDE.md memory files", "🧠"),
    SlashCommand("/pr_comments", "View pull request comments", "💬"),
    SlashCommand("/review", "Request code review", "👀"),
    SlashCommand("/status", "View account and system statuses", "📊"),
    SlashCommand("/terminal-setup", "Install Shift+Enter key binding for newlines", "⌨️"),
    SlashCommand("/vim", "Enter vim mode for alternating insert and command modes", "📝"),
)

PROJECT_ICON = "📄"
USER_ICON = "👤"


class SlashCommandRegistry:
    """Cached built-in and custom commands, de-duplicated by command name."""

    def __init__(self, builtins: tuple[SlashCommand, ...] = BUILT_IN_COMMANDS) -> None:
        self._builtins = tuple(builtins)
        self._custom: tuple[SlashCommand, ...] = ()

    @property
    def custom(self) -> tuple[SlashCommand, ...]:
        return self._custom

    def all(self) -> list[SlashCommand]:
        seen: set[str] = set()
        merged: list[SlashCommand] = []
        for command in (*self._builtins, *self._custom):
            if command.command in seen:
                continue
            seen.add(command.command)
            merged.append(command)
        return merged

    def replace_custom(self, commands: list[SlashCommand]) -> None:
        """Swap in a fresh custom set; built-ins are never replaced."""
        self._custom = tuple(commands)

    def filter(self, query: str) -> list[SlashCommand]:
        """Case-insensitive substring match on command or description."""
        needle = query.lower()
        return [
            command
            for command in self.all()
            if needle in command.command.lower() or needle in command.description.lower()
        ]


def _describe(path: Path) -> str:
    try:
        with path.open("r", encoding="utf-8") as handle:
            first_line = handle.readline().strip()
    except (OSError, UnicodeDecodeError) as exc:
        LOGGER.warning(
            "commands.read_failed",
            extra={"event": "commands.read_failed", "path": str(path), "reason": str(exc)},
        )
        return ""
    if first_line.startswith("#"):
        return first_line.lstrip("#").strip()
    return first_line


def _scan_directory(directory: Path, prefix: str, icon: str, label: str) -> list[SlashCommand]:
    if not directory.is_dir():
        return []
    commands: list[SlashCommand] = []
    for entry in sorted(directory.iterdir()):
        if entry.suffix.lower() != ".md" or not entry.is_file():
            continue
        name = entry.stem
        description = _describe(entry) or f"{label} command: {name}"
        commands.append(
            SlashCommand(
                command=f"/{prefix}:{name}",
                description=description,
                icon=icon,
                is_custom=True,
            )
        )
    return commands


class CustomCommandScanner:
    """Discover project and user command files."""

    def __init__(
        self,
        workspace_root: Path,
        *,
        project_dir: str = ".claude/commands",
        user_dir: str = "~/.claude/commands",
    ) -> None:
        self.project_path = workspace_root / project_dir
        self.user_path = Path(user_dir).expanduser()

    def scan_sync(self) -> list[SlashCommand]:
        commands = _scan_directory(self.project_path, "project", PROJECT_ICON, "Project")
        commands.extend(_scan_directory(self.user_path, "user", USER_ICON, "User"))
        LOGGER.debug(
            "commands.scanned",
            extra={"event": "commands.scanned", "count": len(commands)},
        )
        return commands

    async def scan(self) -> list[SlashCommand]:
        """Scan both directories off the event loop."""
        return await asyncio.to_thread(self.scan_sync)
