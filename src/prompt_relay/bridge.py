"""Translate inbound command envelopes into relay operations.

Envelopes are plain dicts with a ``command`` key, as sent by the UI shell.
Answers and state changes go out as events on the :class:`EventBus`.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
import logging
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

from .commands import CustomCommandScanner, SlashCommand, SlashCommandRegistry
from .composer.context import OutboundMessage
from .composer.suggestions import (
    CommitRef,
    FileRef,
    classify_mention_query,
    item_to_payload,
)
from .dispatch.direct import DirectModeResponse
from .dispatch.router import DispatchRouter
from .events import domain
from .events.bus import EventBus
from .exceptions import ImageValidationError, PromptRelayError
from .images import ImageAttachment, ImageStore, decode_data_url, guess_mime_type, is_image_path
from .providers import DiagnosticsStore
from .state import SessionMode
from .task_manager import TaskManager

LOGGER = logging.getLogger(__name__)

FileSearch = Callable[[str], Awaitable[list[FileRef]]]
CommitSearch = Callable[[str], Awaitable[list[CommitRef]]]
ImagePicker = Callable[[], Awaitable[list[str]]]


def uri_to_path(uri: str) -> Path:
    """Accept ``file://`` URIs and plain paths alike."""
    parsed = urlparse(uri)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    return Path(uri).expanduser()


class EnvelopeBridge:
    """Dispatch inbound envelopes and publish outbound events."""

    def __init__(
        self,
        *,
        router: DispatchRouter,
        bus: EventBus,
        file_search: FileSearch,
        commit_search: CommitSearch,
        diagnostics: DiagnosticsStore,
        image_store: ImageStore,
        registry: SlashCommandRegistry,
        scanner: CustomCommandScanner,
        workspace_root: Path,
        tasks: TaskManager | None = None,
        pick_image_files: ImagePicker | None = None,
    ) -> None:
        self.router = router
        self.bus = bus
        self._file_search = file_search
        self._commit_search = commit_search
        self.diagnostics = diagnostics
        self.image_store = image_store
        self.registry = registry
        self.scanner = scanner
        self.workspace_root = workspace_root
        self.tasks = tasks or TaskManager()
        self._pick_image_files = pick_image_files
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[None]]] = {
            "sendMessage": self._send_message,
            "searchFiles": self._search_files,
            "searchCommits": self._search_commits,
            "getProblems": self._get_problems,
            "selectImageFiles": self._select_image_files,
            "resolveDroppedPaths": self._resolve_dropped_paths,
            "resolveDroppedImages": self._resolve_dropped_images,
            "toggleMainMode": self._toggle_main_mode,
            "pauseProcess": self._pause_process,
            "clearDirectMode": self._clear_direct_mode,
            "rescanCustomCommands": self._rescan_custom_commands,
            "toggleMode": self._toggle_mode,
            "launchClaudeNew": self._launch("new"),
            "launchClaudeContinue": self._launch("continue"),
            "launchClaudeHistory": self._launch("history"),
        }
        self._wire_outbound()

    # -- outbound ------------------------------------------------------------

    def _publish_soon(self, name: str, data: dict[str, Any]) -> None:
        """Publish from a synchronous callback."""
        self.tasks.spawn(self.bus.publish(name, data, source="bridge"))

    def _wire_outbound(self) -> None:
        router = self.router
        router.lifecycle.on_status_change(
            lambda status: self._publish_soon(domain.TERMINAL_STATUS, status)
        )
        router.direct.on_response(self._on_direct_response)
        router.direct.on_running_change(
            lambda running: self._publish_soon(domain.UPDATE_PROCESS_STATE, {"isRunning": running})
        )
        router.delivery.on_return_focus(lambda: self._publish_soon(domain.FOCUS_INPUT, {}))
        router.on_warning(lambda message: self._publish_soon(domain.SHOW_WARNING, {"message": message}))
        router.on_mode_change(
            lambda mode: self._publish_soon(
                domain.SET_DIRECT_MODE, {"isDirectMode": mode is SessionMode.DIRECT}
            )
        )

    def _on_direct_response(self, response: DirectModeResponse) -> None:
        self._publish_soon(domain.DIRECT_MODE_RESPONSE, response.to_payload())

    async def publish_custom_commands(self, commands: list[SlashCommand]) -> None:
        await self.bus.publish(
            domain.CUSTOM_COMMANDS_UPDATED,
            {"commands": [command.to_payload() for command in commands]},
            source="bridge",
        )

    # -- inbound -------------------------------------------------------------

    async def handle(self, envelope: dict[str, Any]) -> None:
        """Run the handler for ``envelope``; unknown commands are ignored."""
        command = envelope.get("command") if isinstance(envelope, dict) else None
        handler = self._handlers.get(command) if isinstance(command, str) else None
        if handler is None:
            LOGGER.warning(
                "bridge.unknown_envelope",
                extra={"event": "bridge.unknown_envelope", "command": str(command)},
            )
            return
        await self._guarded(command, handler(envelope))

    async def _guarded(self, command: str, operation: Awaitable[Any]) -> None:
        try:
            await operation
        except PromptRelayError as exc:
            LOGGER.error(
                "bridge.handler_failed",
                extra={"event": "bridge.handler_failed", "command": command, "error": str(exc)},
            )
            await self.bus.publish(domain.SHOW_WARNING, {"message": str(exc)}, source="bridge")

    def post(self, envelope: dict[str, Any]) -> None:
        """Fire-and-forget variant of :meth:`handle` for UI event handlers."""
        self.tasks.spawn(self.handle(envelope))

    async def send(self, message: OutboundMessage) -> None:
        """Dispatch a message composed in-process (bytes images included)."""
        await self._guarded("sendMessage", self.router.send(message))

    def _images_from(self, raw_images: Any) -> list[ImageAttachment]:
        images: list[ImageAttachment] = []
        for raw in raw_images or []:
            if not isinstance(raw, dict):
                continue
            name = str(raw.get("name") or "image")
            origin = raw.get("origin") or "clipboard"
            if raw.get("path"):
                images.append(
                    ImageAttachment(name=name, origin=origin, path=str(raw["path"]), mime_type=str(raw.get("type") or ""))
                )
                continue
            if raw.get("data"):
                try:
                    data, mime = decode_data_url(str(raw["data"]))
                except ImageValidationError as exc:
                    LOGGER.info(
                        "bridge.image_decode_failed",
                        extra={"event": "bridge.image_decode_failed", "image": name, "reason": str(exc)},
                    )
                    # Unreadable payloads still count as failed attachments.
                    images.append(ImageAttachment(name=name, origin=origin, path=""))
                    continue
                images.append(
                    ImageAttachment(name=name, origin=origin, data=data, mime_type=str(raw.get("type") or mime))
                )
        return images

    async def _send_message(self, envelope: dict[str, Any]) -> None:
        message = OutboundMessage(
            text=str(envelope.get("text") or ""),
            images=tuple(self._images_from(envelope.get("images"))),
            diagnostics=tuple(self.diagnostics.select(envelope.get("problemIds") or [])),
        )
        await self.router.send(message)

    async def _search_files(self, envelope: dict[str, Any]) -> None:
        query = str(envelope.get("query") or "")
        if classify_mention_query(query) == "commit":
            await self._search_commits(envelope)
            return
        try:
            results = await self._file_search(query)
        except Exception as exc:  # noqa: BLE001 - search failures yield empty results.
            LOGGER.warning(
                "bridge.file_search_failed",
                extra={"event": "bridge.file_search_failed", "error": str(exc)},
            )
            results = []
        await self.bus.publish(
            domain.FILE_SEARCH_RESULTS,
            {"results": [item_to_payload(r) for r in results], "requestId": envelope.get("requestId")},
            source="bridge",
        )

    async def _search_commits(self, envelope: dict[str, Any]) -> None:
        query = str(envelope.get("query") or "")
        try:
            commits = await self._commit_search(query)
        except Exception as exc:  # noqa: BLE001 - search failures yield empty results.
            LOGGER.warning(
                "bridge.commit_search_failed",
                extra={"event": "bridge.commit_search_failed", "error": str(exc)},
            )
            commits = []
        await self.bus.publish(
            domain.COMMIT_SEARCH_RESULTS,
            {"commits": [item_to_payload(c) for c in commits], "requestId": envelope.get("requestId")},
            source="bridge",
        )

    async def _get_problems(self, envelope: dict[str, Any]) -> None:
        problems = [
            {"id": str(index), **diagnostic.to_payload()}
            for index, diagnostic in enumerate(self.diagnostics.list())
        ]
        await self.bus.publish(
            domain.PROBLEMS_RESULTS,
            {"problems": problems, "requestId": envelope.get("requestId")},
            source="bridge",
        )

    def _checked_images(self, paths: list[Path]) -> tuple[list[dict[str, str]], list[str]]:
        accepted: list[dict[str, str]] = []
        failed: list[str] = []
        for path in paths:
            try:
                resolved = self.image_store.check_path(str(path))
            except ImageValidationError:
                failed.append(path.name)
                continue
            accepted.append(
                {"name": resolved.name, "path": str(resolved), "type": guess_mime_type(resolved.name)}
            )
        return accepted, failed

    async def _select_image_files(self, envelope: dict[str, Any]) -> None:
        if self._pick_image_files is None:
            LOGGER.info("bridge.no_image_picker", extra={"event": "bridge.no_image_picker"})
            return
        selected = await self._pick_image_files()
        accepted, failed = self._checked_images([Path(p).expanduser() for p in selected])
        if failed:
            await self.bus.publish(
                domain.SHOW_WARNING,
                {"message": f"Skipped {len(failed)} file(s): {', '.join(failed)}"},
                source="bridge",
            )
        if accepted:
            await self.bus.publish(domain.IMAGE_FILES_SELECTED, {"images": accepted}, source="bridge")

    def _relative_path(self, path: Path) -> str:
        try:
            return "/" + path.resolve().relative_to(self.workspace_root.resolve()).as_posix()
        except ValueError:
            return str(path)

    async def _resolve_dropped_paths(self, envelope: dict[str, Any]) -> None:
        paths = [self._relative_path(uri_to_path(str(uri))) for uri in envelope.get("uris") or []]
        await self.bus.publish(domain.DROPPED_PATHS_RESOLVED, {"paths": paths}, source="bridge")

    async def _resolve_dropped_images(self, envelope: dict[str, Any]) -> None:
        saved: list[str] = []
        for uri in envelope.get("uris") or []:
            path = uri_to_path(str(uri))
            if not is_image_path(str(path)):
                continue
            try:
                data = path.read_bytes()
                saved.append(str(self.image_store.save_bytes(data, path.name)))
            except (OSError, ImageValidationError) as exc:
                LOGGER.info(
                    "bridge.dropped_image_failed",
                    extra={"event": "bridge.dropped_image_failed", "path": str(path), "reason": str(exc)},
                )
        if saved:
            await self.bus.publish(
                domain.DROPPED_IMAGES_RESOLVED, {"imagePaths": saved}, source="bridge"
            )

    async def _toggle_main_mode(self, envelope: dict[str, Any]) -> None:
        direct = bool(envelope.get("isDirectMode"))
        self.router.set_mode(SessionMode.DIRECT if direct else SessionMode.TERMINAL)

    async def _pause_process(self, envelope: dict[str, Any]) -> None:
        await self.router.pause()

    async def _clear_direct_mode(self, envelope: dict[str, Any]) -> None:
        await self.router.clear_direct()

    async def _rescan_custom_commands(self, envelope: dict[str, Any]) -> None:
        commands = await self.scanner.scan()
        self.registry.replace_custom(commands)
        await self.publish_custom_commands(self.registry.all())

    async def _toggle_mode(self, envelope: dict[str, Any]) -> None:
        await self.router.cycle_agent_mode()

    def _launch(self, variant: str) -> Callable[[dict[str, Any]], Awaitable[None]]:
        async def _handler(envelope: dict[str, Any]) -> None:
            await self.router.launch(variant)  # type: ignore[arg-type]

        return _handler
