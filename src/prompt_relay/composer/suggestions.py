"""Suggestion items and the debounced, staleness-safe suggestion pipeline."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
import logging
import re
from typing import Any, Literal

from ..clock import DEFAULT_CLOCK, Clock
from ..commands import SlashCommand, SlashCommandRegistry
from ..task_manager import Debouncer, GenerationGate
from .mentions import MENTION_KEYWORDS
from .triggers import MentionTrigger, SlashTrigger, TriggerState

LOGGER = logging.getLogger(__name__)

COMMIT_QUERY_PATTERN = re.compile(r"^[a-f0-9]{7,40}$", re.IGNORECASE)


@dataclass(frozen=True)
class FileRef:
    path: str
    kind: Literal["file", "folder"] = "file"
    label: str = ""

    @property
    def display(self) -> str:
        return self.label or self.path.rstrip("/").rsplit("/", 1)[-1]


@dataclass(frozen=True)
class CommitRef:
    hash: str
    subject: str
    author: str
    date: str

    @property
    def short_hash(self) -> str:
        return self.hash[:7]


@dataclass(frozen=True)
class KeywordRef:
    keyword: str


@dataclass(frozen=True)
class SlashCommandRef:
    name: str
    description: str
    icon: str
    is_custom: bool = False

    @classmethod
    def from_command(cls, command: SlashCommand) -> SlashCommandRef:
        return cls(
            name=command.command,
            description=command.description,
            icon=command.icon,
            is_custom=command.is_custom,
        )


SuggestionItem = FileRef | CommitRef | KeywordRef | SlashCommandRef

DEFAULT_MENTION_ITEMS: tuple[KeywordRef, ...] = tuple(
    KeywordRef(keyword) for keyword in MENTION_KEYWORDS
)


def mention_value(item: SuggestionItem) -> str:
    """Text that follows ``@`` (or replaces the line, for slash commands)."""
    match item:
        case FileRef(path=path):
            return path
        case CommitRef(hash=commit_hash):
            return commit_hash
        case KeywordRef(keyword=keyword):
            return keyword
        case SlashCommandRef(name=name):
            return name
    raise TypeError(f"Unsupported suggestion item: {item!r}")


def item_to_payload(item: SuggestionItem) -> dict[str, Any]:
    match item:
        case FileRef():
            return {"path": item.path, "type": item.kind, "label": item.display}
        case CommitRef():
            return {
                "hash": item.hash,
                "shortHash": item.short_hash,
                "message": item.subject,
                "author": item.author,
                "date": item.date,
            }
        case KeywordRef():
            return {"type": item.keyword, "value": item.keyword}
        case SlashCommandRef():
            return {
                "command": item.name,
                "description": item.description,
                "icon": item.icon,
                "isCustom": item.is_custom,
            }
    raise TypeError(f"Unsupported suggestion item: {item!r}")


SuggestionKind = Literal["file", "commit", "slash"]


@dataclass(frozen=True)
class SuggestionRequest:
    id: int
    query: str
    kind: SuggestionKind


@dataclass(frozen=True)
class SuggestionResult:
    """Candidates for the live trigger; ``request`` is None for sync results."""

    items: tuple[SuggestionItem, ...]
    request: SuggestionRequest | None = None
    loading: bool = False


def classify_mention_query(query: str) -> SuggestionKind:
    return "commit" if COMMIT_QUERY_PATTERN.match(query) else "file"


FileSearch = Callable[[str], Awaitable[list[FileRef]]]
CommitSearch = Callable[[str], Awaitable[list[CommitRef]]]
CommandRescan = Callable[[], Awaitable[list[SlashCommand]]]


@dataclass
class _Session:
    kind: Literal["none", "mention", "slash"] = "none"
    query: str | None = None
    items: tuple[SuggestionItem, ...] = field(default_factory=tuple)


class SuggestionSource:
    """Produce candidates for the active trigger without touching the buffer.

    Mention queries are debounced and fetched through the providers; only the
    newest request may deliver.  Slash queries filter the cached registry
    synchronously, and opening an empty slash trigger also refreshes the
    custom commands in the background.
    """

    def __init__(
        self,
        *,
        search_files: FileSearch,
        search_commits: CommitSearch,
        registry: SlashCommandRegistry,
        rescan_commands: CommandRescan | None = None,
        debounce_ms: float = 250,
        clock: Clock = DEFAULT_CLOCK,
    ) -> None:
        self._search_files = search_files
        self._search_commits = search_commits
        self.registry = registry
        self._rescan_commands = rescan_commands
        self._debouncer = Debouncer(debounce_ms, clock=clock)
        self._fetches: GenerationGate[list[Any]] = GenerationGate("suggestions.fetch")
        self._rescans: GenerationGate[list[SlashCommand]] = GenerationGate(
            "suggestions.rescan"
        )
        self._session = _Session()
        self._loading = False
        self._on_results: Callable[[SuggestionResult], None] | None = None
        self._on_commands_updated: Callable[[list[SlashCommand]], None] | None = None

    def on_results(self, callback: Callable[[SuggestionResult], None]) -> None:
        """Register the consumer of candidate lists (the composer controller)."""
        self._on_results = callback

    def on_commands_updated(self, callback: Callable[[list[SlashCommand]], None]) -> None:
        self._on_commands_updated = callback

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def latest_request_id(self) -> int:
        return self._fetches.generation

    def update(self, trigger: TriggerState) -> None:
        """React to the trigger computed after an input event."""
        match trigger:
            case MentionTrigger(query=query):
                self._update_mention(query)
            case SlashTrigger(query=query):
                self._update_slash(query)
            case _:
                self.reset()

    def reset(self) -> None:
        """Close the session; late results from it are discarded."""
        self._debouncer.cancel()
        self._fetches.invalidate()
        self._loading = False
        self._session = _Session()

    def _emit(self, result: SuggestionResult) -> None:
        self._session.items = result.items
        if self._on_results is not None:
            self._on_results(result)

    def _update_mention(self, query: str) -> None:
        if self._session.kind == "mention" and self._session.query == query:
            return
        self._session.kind = "mention"
        self._session.query = query
        if not query:
            self._debouncer.cancel()
            self._fetches.invalidate()
            self._loading = False
            self._emit(SuggestionResult(items=DEFAULT_MENTION_ITEMS))
            return
        self._debouncer.call(lambda: self.request(query))

    def _update_slash(self, query: str) -> None:
        if self._session.kind == "mention":
            self._debouncer.cancel()
            self._fetches.invalidate()
            self._loading = False
        if self._session.kind == "slash" and self._session.query == query:
            return
        self._session.kind = "slash"
        self._session.query = query
        self._emit(SuggestionResult(items=self._filter_slash(query)))
        if not query:
            self.rescan_commands()

    def _filter_slash(self, query: str) -> tuple[SuggestionItem, ...]:
        return tuple(SlashCommandRef.from_command(c) for c in self.registry.filter(query))

    def request(self, query: str) -> SuggestionRequest:
        """Issue a mention fetch now, bypassing the debounce window."""
        kind = classify_mention_query(query)
        search = self._search_commits if kind == "commit" else self._search_files
        self._loading = True

        def _apply(generation: int, items: list[Any]) -> None:
            self._loading = False
            request = SuggestionRequest(id=generation, query=query, kind=kind)
            self._emit(SuggestionResult(items=tuple(items), request=request))

        def _failed(generation: int, _exc: BaseException) -> None:
            self._loading = False
            request = SuggestionRequest(id=generation, query=query, kind=kind)
            self._emit(SuggestionResult(items=(), request=request))

        generation = self._fetches.submit(lambda: search(query), _apply, _failed)
        request = SuggestionRequest(id=generation, query=query, kind=kind)
        LOGGER.debug(
            "suggestions.request",
            extra={"event": "suggestions.request", "id": request.id, "kind": kind},
        )
        if self._on_results is not None:
            self._on_results(
                SuggestionResult(items=self._session.items, request=request, loading=True)
            )
        return request

    def rescan_commands(self) -> None:
        """Refresh custom commands in the background."""
        if self._rescan_commands is None:
            return

        def _apply(_generation: int, commands: list[SlashCommand]) -> None:
            self.registry.replace_custom(commands)
            if self._on_commands_updated is not None:
                self._on_commands_updated(self.registry.all())
            if self._session.kind == "slash" and self._session.query is not None:
                self._emit(SuggestionResult(items=self._filter_slash(self._session.query)))

        self._rescans.submit(self._rescan_commands, _apply)

    async def drain(self) -> None:
        """Wait for in-flight fetches and rescans to settle."""
        await self._fetches.drain()
        await self._rescans.drain()

    def close(self) -> None:
        self.reset()
        self._fetches.cancel_all()
        self._rescans.cancel_all()


