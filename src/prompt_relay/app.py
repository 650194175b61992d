"""Main Textual application hosting the composer and dispatch pipeline."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
import logging
from pathlib import Path
import shutil
import sys
from typing import Any

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.widgets import Footer, Header, OptionList

from .bridge import EnvelopeBridge
from .clock import DEFAULT_CLOCK
from .commands import CustomCommandScanner, SlashCommandRegistry
from .composer.context import ContextAssembler
from .composer.controller import ComposerController, ComposerState
from .composer.suggestions import SuggestionSource
from .config import load_config
from .dispatch.direct import DirectSession
from .dispatch.lifecycle import ProcessLifecycleTracker
from .dispatch.pty_terminal import PtyTerminal
from .dispatch.router import DispatchRouter
from .dispatch.terminal import TerminalDelivery
from .events import domain
from .events.bus import Event, EventBus
from .images import ImageAttachment, ImageStore, is_image_path
from .logging_utils import configure_logging
from .providers import DiagnosticsStore, GitCommitSearch, WorkspaceFileSearch
from .screens import DiagnosticPickerScreen, ImagePathScreen
from .state import DispatchPhase, SessionMode
from .task_manager import TaskManager
from .widgets import ComposerInput, StatusBar, SuggestionMenu, TerminalPane, TranscriptView

LOGGER = logging.getLogger(__name__)

IMAGE_DIALOG_PATTERNS = ["*.png", "*.jpg", "*.jpeg", "*.gif", "*.webp", "*.svg"]
DIALOG_TIMEOUT_SECONDS = 120
# Actions that must win over widget and screen bindings (shift+tab is focus_previous).
PRIORITY_ACTIONS = frozenset({"cycle_agent_mode", "quit"})


async def _open_native_image_dialog(title: str = "Attach images") -> list[str] | None:
    """Open a native multi-file picker via zenity or kdialog.

    Returns the selected paths, an empty list when cancelled, or ``None`` when
    no dialog backend is installed.
    """
    zenity_bin = shutil.which("zenity")
    kdialog_bin = shutil.which("kdialog")
    if zenity_bin is not None:
        cmd = [
            zenity_bin,
            "--file-selection",
            "--multiple",
            "--separator=\n",
            f"--title={title}",
            f"--file-filter=Images | {' '.join(IMAGE_DIALOG_PATTERNS)}",
        ]
    elif kdialog_bin is not None:
        cmd = [
            kdialog_bin,
            "--getopenfilename",
            ".",
            " ".join(IMAGE_DIALOG_PATTERNS),
            "--multiple",
            "--separate-output",
        ]
    else:
        return None
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=DIALOG_TIMEOUT_SECONDS)
    except (TimeoutError, OSError) as exc:
        LOGGER.info(
            "app.file_dialog.failed",
            extra={"event": "app.file_dialog.failed", "error": str(exc)},
        )
        return []
    if proc.returncode != 0:
        return []
    return [line for line in stdout.decode().splitlines() if line.strip()]


class PromptRelayApp(App[None]):
    """Compose prompts with mentions and attachments and relay them to Claude."""

    CSS = """
    Screen {
        layout: vertical;
        background: $background;
    }

    #app-root {
        layout: vertical;
        width: 100%;
        height: 1fr;
        background: $background;
    }

    #terminal_pane, #transcript {
        height: 1fr;
        padding: 0 1;
    }

    .hidden {
        display: none;
    }

    #suggestion_menu {
        width: 80;
        margin: 0 1;
    }

    #composer {
        height: 6;
        border-top: solid $panel;
        background: $surface;
    }

    #status_bar {
        height: auto;
        padding: 0 1;
        border-top: solid $panel;
        background: $surface;
    }
    """

    DEFAULT_ACTION_DESCRIPTIONS: dict[str, str] = {
        "send_message": "Send",
        "toggle_direct_mode": "Direct",
        "pause_process": "Pause",
        "clear_direct_mode": "Clear",
        "cycle_agent_mode": "Agent Mode",
        "attach_image": "Image",
        "launch_new": "New",
        "launch_continue": "Continue",
        "launch_history": "History",
        "rescan_commands": "Rescan",
        "quit": "Quit",
    }

    def __init__(
        self,
        *,
        config_path: Path | None = None,
        diagnostics_path: Path | None = None,
    ) -> None:
        self.config = load_config(config_path)
        configure_logging(self.config["logging"])
        LOGGER.info(
            "app.python",
            extra={
                "event": "app.python",
                "executable": sys.executable,
                "version": sys.version.split()[0],
            },
        )
        app_cfg = self.config["app"]
        terminal_cfg = self.config["terminal"]
        direct_cfg = self.config["direct"]
        suggestions_cfg = self.config["suggestions"]
        images_cfg = self.config["images"]
        commands_cfg = self.config["commands"]

        self.window_title = str(app_cfg["title"])
        self.workspace_root = Path(str(app_cfg["workspace_root"])).expanduser().resolve()
        self._task_manager = TaskManager()
        self.bus = EventBus()

        self.registry = SlashCommandRegistry()
        self.scanner = CustomCommandScanner(
            self.workspace_root,
            project_dir=str(commands_cfg["project_dir"]),
            user_dir=str(commands_cfg["user_dir"]),
        )
        self.file_search = WorkspaceFileSearch(
            self.workspace_root, max_results=int(suggestions_cfg["max_results"])
        )
        self.commit_search = GitCommitSearch(
            self.workspace_root, depth=int(suggestions_cfg["commit_history_depth"])
        )
        self.diagnostics = DiagnosticsStore()
        if diagnostics_path is not None:
            self._load_diagnostics(diagnostics_path)

        temp_dir = str(images_cfg["temp_dir"])
        self.image_store = ImageStore(
            Path(temp_dir).expanduser() if temp_dir else None,
            max_bytes=int(images_cfg["max_bytes"]),
            allowed_mime_types=list(images_cfg["allowed_mime_types"]),
        )
        self._image_max_age_seconds = float(images_cfg["max_age_hours"]) * 3600

        self.suggestions = SuggestionSource(
            search_files=self.file_search,
            search_commits=self.commit_search,
            registry=self.registry,
            rescan_commands=self.scanner.scan,
            debounce_ms=float(suggestions_cfg["debounce_ms"]),
        )
        self.composer = ComposerController(
            self.suggestions, list_diagnostics=self.diagnostics.list
        )
        self.composer.on_change(self._render_composer)

        self._terminal_command = str(terminal_cfg["command"])
        self._terminal_name = str(terminal_cfg["name"])
        self._startup_grace_ms = float(terminal_cfg["startup_grace_ms"])
        self.lifecycle = ProcessLifecycleTracker(
            self._spawn_terminal, default_args=list(terminal_cfg["args"])
        )
        self.delivery = TerminalDelivery(
            clock=DEFAULT_CLOCK,
            settle_delay_ms=float(terminal_cfg["settle_delay_ms"]),
            focus_delay_ms=float(terminal_cfg["focus_delay_ms"]),
            focus_retry_offsets_ms=list(terminal_cfg["focus_retry_offsets_ms"]),
            paste_length_threshold=int(terminal_cfg["paste_length_threshold"]),
        )
        self.delivery.on_phase_change(self._on_delivery_phase)
        self.direct = DirectSession(
            command=str(direct_cfg["command"]),
            extra_args=list(direct_cfg["extra_args"]),
            cwd=self.workspace_root,
            pause_grace_seconds=float(direct_cfg["pause_grace_seconds"]),
        )
        start_direct = bool(app_cfg["start_in_direct_mode"])
        self.router = DispatchRouter(
            assembler=ContextAssembler(self.image_store),
            lifecycle=self.lifecycle,
            delivery=self.delivery,
            direct=self.direct,
            mode=SessionMode.DIRECT if start_direct else SessionMode.TERMINAL,
        )
        self.bridge = EnvelopeBridge(
            router=self.router,
            bus=self.bus,
            file_search=self.file_search,
            commit_search=self.commit_search,
            diagnostics=self.diagnostics,
            image_store=self.image_store,
            registry=self.registry,
            scanner=self.scanner,
            workspace_root=self.workspace_root,
            tasks=self._task_manager,
            pick_image_files=self._pick_image_files,
        )
        self.suggestions.on_commands_updated(
            lambda commands: self._task_manager.spawn(self.bridge.publish_custom_commands(commands))
        )

        self._picker_screen_open = False
        self._w_composer: ComposerInput | None = None
        self._w_menu: SuggestionMenu | None = None
        self._w_status: StatusBar | None = None
        self._w_terminal: TerminalPane | None = None
        self._w_transcript: TranscriptView | None = None

        self._setup_event_subscribers()
        self._binding_specs = self._binding_specs_from_config(self.config)
        super().__init__()

    @classmethod
    def _binding_specs_from_config(
        cls, config: dict[str, dict[str, Any]]
    ) -> list[Binding]:
        keybinds = config.get("keybinds", {})
        bindings: list[Binding] = []
        for action_name in cls.DEFAULT_ACTION_DESCRIPTIONS:
            binding_key = keybinds.get(action_name)
            if isinstance(binding_key, str) and binding_key.strip():
                bindings.append(
                    Binding(
                        key=binding_key.strip(),
                        action=action_name,
                        description=cls.DEFAULT_ACTION_DESCRIPTIONS[action_name],
                        show=True,
                        priority=action_name in PRIORITY_ACTIONS,
                    )
                )
        return bindings

    def _load_diagnostics(self, path: Path) -> None:
        try:
            count = self.diagnostics.load_file(path)
        except (OSError, ValueError) as exc:
            LOGGER.warning(
                "app.diagnostics.load_failed",
                extra={"event": "app.diagnostics.load_failed", "path": str(path), "error": str(exc)},
            )
            return
        LOGGER.info(
            "app.diagnostics.loaded",
            extra={"event": "app.diagnostics.loaded", "path": str(path), "count": count},
        )

    # -- composition ---------------------------------------------------------

    def compose(self) -> ComposeResult:
        """Compose app widgets."""
        yield Header()
        with Container(id="app-root"):
            yield TerminalPane(id="terminal_pane")
            yield TranscriptView(id="transcript")
            yield SuggestionMenu(id="suggestion_menu", classes="hidden")
            yield ComposerInput(id="composer")
            yield StatusBar(id="status_bar")
        yield Footer()

    async def on_mount(self) -> None:
        """Register runtime keybindings, cache widgets and start background work."""
        self.title = self.window_title
        self.sub_title = str(self.workspace_root)
        for binding in self._binding_specs:
            # App.bind has no priority flag; go through the bindings map directly.
            self._bindings.bind(
                binding.key,
                binding.action,
                binding.description,
                show=binding.show,
                key_display=binding.key_display,
                priority=binding.priority,
            )

        self._w_composer = self.query_one("#composer", ComposerInput)
        self._w_menu = self.query_one("#suggestion_menu", SuggestionMenu)
        self._w_status = self.query_one("#status_bar", StatusBar)
        self._w_terminal = self.query_one("#terminal_pane", TerminalPane)
        self._w_transcript = self.query_one("#transcript", TranscriptView)

        self._apply_mode(self.router.mode is SessionMode.DIRECT)
        self._w_status.set_terminal(self.lifecycle.status())
        self._w_composer.focus()

        self.bridge.post({"command": "rescanCustomCommands"})
        self.image_store.cleanup_older_than(self._image_max_age_seconds)
        self.set_interval(3600, self._cleanup_images)

    async def on_unmount(self) -> None:
        """Stop child processes, cancel background tasks and remove temp images."""
        self.suggestions.close()
        await self.direct.pause()
        await self.lifecycle.shutdown()
        await self._task_manager.cancel_all()
        self.image_store.cleanup_all()

    def _cleanup_images(self) -> None:
        removed = self.image_store.cleanup_older_than(self._image_max_age_seconds)
        if removed:
            LOGGER.info(
                "app.images.cleaned",
                extra={"event": "app.images.cleaned", "count": removed},
            )

    # -- terminal transport --------------------------------------------------

    async def _spawn_terminal(self, args: Sequence[str]) -> PtyTerminal:
        terminal = await PtyTerminal.spawn(
            self._terminal_command,
            args,
            name=self._terminal_name,
            cwd=self.workspace_root,
            startup_grace_ms=self._startup_grace_ms,
        )
        terminal.on_output(self._on_terminal_output)
        terminal.on_show(self._on_terminal_show)
        terminal.on_closed(self.lifecycle.notify_closed)
        return terminal

    def _on_terminal_output(self, chunk: str) -> None:
        if self._w_terminal is not None:
            self._w_terminal.feed(chunk)

    def _on_terminal_show(self, preserve_focus: bool) -> None:
        if self._w_terminal is None:
            return
        if self.router.mode is SessionMode.TERMINAL:
            self._w_terminal.set_class(False, "hidden")
        if not preserve_focus:
            self._w_terminal.focus()

    def _on_delivery_phase(self, phase: DispatchPhase) -> None:
        if self._w_status is not None:
            label = "" if phase is DispatchPhase.IDLE else phase.value.lower().replace("_", " ")
            self._w_status.set_activity(label)

    # -- outbound events -----------------------------------------------------

    def _setup_event_subscribers(self) -> None:
        """Route outbound relay events to the widgets."""
        self.bus.subscribe(domain.TERMINAL_STATUS, self._on_terminal_status)
        self.bus.subscribe(domain.DIRECT_MODE_RESPONSE, self._on_direct_response)
        self.bus.subscribe(domain.UPDATE_PROCESS_STATE, self._on_process_state)
        self.bus.subscribe(domain.SET_DIRECT_MODE, self._on_set_direct_mode)
        self.bus.subscribe(domain.FOCUS_INPUT, self._on_focus_input)
        self.bus.subscribe(domain.SHOW_WARNING, self._on_show_warning)
        self.bus.subscribe(domain.IMAGE_FILES_SELECTED, self._on_images_selected)
        self.bus.subscribe(domain.DROPPED_PATHS_RESOLVED, self._on_dropped_paths)
        self.bus.subscribe(domain.DROPPED_IMAGES_RESOLVED, self._on_dropped_images)

    def _on_terminal_status(self, event: Event) -> None:
        if self._w_status is not None:
            self._w_status.set_terminal(event.data)

    async def _on_direct_response(self, event: Event) -> None:
        if self._w_transcript is not None:
            await self._w_transcript.add_response(event.data)

    def _on_process_state(self, event: Event) -> None:
        if self._w_status is not None:
            self._w_status.set_activity("running" if event.data.get("isRunning") else "")

    def _on_set_direct_mode(self, event: Event) -> None:
        self._apply_mode(bool(event.data.get("isDirectMode")))

    def _on_focus_input(self, _event: Event) -> None:
        if self._w_composer is not None:
            self._w_composer.focus()

    def _on_show_warning(self, event: Event) -> None:
        self.notify(str(event.data.get("message", "")), severity="warning")

    def _on_images_selected(self, event: Event) -> None:
        for image in event.data.get("images", []):
            self.composer.add_image(
                ImageAttachment(
                    name=str(image["name"]),
                    origin="file_dialog",
                    path=str(image["path"]),
                    mime_type=str(image.get("type", "")),
                )
            )

    def _on_dropped_paths(self, event: Event) -> None:
        paths = [str(path) for path in event.data.get("paths", [])]
        if paths:
            self.composer.insert_paths(paths)

    def _on_dropped_images(self, event: Event) -> None:
        for path in event.data.get("imagePaths", []):
            self.composer.add_image(
                ImageAttachment(name=Path(str(path)).name, origin="drop", path=str(path))
            )

    def _apply_mode(self, direct: bool) -> None:
        if self._w_terminal is None or self._w_transcript is None or self._w_status is None:
            return
        self._w_terminal.set_class(direct, "hidden")
        self._w_transcript.set_class(not direct, "hidden")
        self._w_status.set_mode(direct)

    # -- composer ------------------------------------------------------------

    def _render_composer(self, state: ComposerState) -> None:
        if self._w_composer is None or self._w_menu is None:
            return
        self._w_composer.sync(state.buffer.content, state.buffer.cursor)
        self._w_composer.set_menu_active(state.menu_visible)
        if state.menu_visible:
            self._w_menu.show_items(state.suggestions, state.selected_index, loading=state.loading)
        else:
            self._w_menu.hide()
        if self._w_status is not None:
            self._w_status.set_attachments(
                len(state.pending_images), len(state.pending_diagnostics)
            )
        if state.picker_open and not self._picker_screen_open:
            self._picker_screen_open = True
            self.push_screen(
                DiagnosticPickerScreen(state.picker_choices, state.picker_selected),
                callback=self._on_picker_dismissed,
            )

    def _on_picker_dismissed(self, selected: list[int] | None) -> None:
        self._picker_screen_open = False
        if selected is None:
            self.composer.close_diagnostic_picker()
            return
        self.composer.select_all_diagnostics(False)
        for index in selected:
            self.composer.toggle_diagnostic(index)
        self.composer.confirm_diagnostics()

    def on_composer_input_edited(self, event: ComposerInput.Edited) -> None:
        buffer = self.composer.state.buffer
        if event.text == buffer.content and event.cursor == buffer.cursor:
            return
        self.composer.set_text(event.text, event.cursor)

    def on_composer_input_menu_key(self, event: ComposerInput.MenuKey) -> None:
        if event.key == "up":
            self.composer.move_selection(-1)
        elif event.key == "down":
            self.composer.move_selection(1)
        elif event.key in {"tab", "enter"}:
            self.composer.accept_selection()
        elif event.key == "escape":
            self.composer.dismiss_menu()

    async def on_composer_input_submitted(self, _event: ComposerInput.Submitted) -> None:
        await self.action_send_message()

    def on_composer_input_paths_dropped(self, event: ComposerInput.PathsDropped) -> None:
        images = [path for path in event.paths if is_image_path(path)]
        others = [path for path in event.paths if not is_image_path(path)]
        if images:
            self.bridge.post({"command": "resolveDroppedImages", "uris": images})
        if others:
            self.bridge.post({"command": "resolveDroppedPaths", "uris": others})

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        if event.option_list.id != "suggestion_menu":
            return
        event.stop()
        self.composer.accept_selection(event.option_index)
        if self._w_composer is not None:
            self._w_composer.focus()

    async def _pick_image_files(self) -> list[str]:
        selected = await _open_native_image_dialog()
        if selected is not None:
            return selected
        future: asyncio.Future[str | None] = asyncio.get_running_loop().create_future()

        def _dismissed(value: str | None) -> None:
            if not future.done():
                future.set_result(value)

        self.push_screen(ImagePathScreen(), callback=_dismissed)
        path = await future
        return [path] if path else []

    # -- actions -------------------------------------------------------------

    async def action_send_message(self) -> None:
        """Freeze the composer and dispatch through the active transport."""
        message = self.composer.submit()
        if message is None:
            return
        self._task_manager.spawn(self.bridge.send(message))

    def action_toggle_direct_mode(self) -> None:
        direct = self.router.mode is not SessionMode.DIRECT
        self.bridge.post({"command": "toggleMainMode", "isDirectMode": direct})

    def action_pause_process(self) -> None:
        self.bridge.post({"command": "pauseProcess"})

    async def action_clear_direct_mode(self) -> None:
        self.bridge.post({"command": "clearDirectMode"})
        if self._w_transcript is not None:
            await self._w_transcript.clear()

    def action_cycle_agent_mode(self) -> None:
        self.bridge.post({"command": "toggleMode"})

    def action_attach_image(self) -> None:
        self.bridge.post({"command": "selectImageFiles"})

    def action_launch_new(self) -> None:
        self.bridge.post({"command": "launchClaudeNew"})

    def action_launch_continue(self) -> None:
        self.bridge.post({"command": "launchClaudeContinue"})

    def action_launch_history(self) -> None:
        self.bridge.post({"command": "launchClaudeHistory"})

    def action_rescan_commands(self) -> None:
        self.bridge.post({"command": "rescanCustomCommands"})

    async def action_quit(self) -> None:
        """Exit the app."""
        self.exit()
