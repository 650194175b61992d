"""Configuration loading and validation for the prompt relay."""

from __future__ import annotations

from copy import deepcopy
import logging
import os
from pathlib import Path
import re
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .exceptions import ConfigValidationError

import tomllib  # stdlib since Python 3.11 (project requires >=3.11)

LOGGER = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "promptrelay"
CONFIG_PATH = CONFIG_DIR / "config.toml"

MIME_TYPE_PATTERN = re.compile(r"^image/[a-z0-9.+-]+$")
VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


def _non_empty_string(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError("Expected a string value.")
    normalized = value.strip()
    if not normalized:
        raise ValueError("String value must not be empty.")
    return normalized


def _string_list(value: Any, field_name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{field_name} must be a list of strings.")
    normalized: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"{field_name} entries must be strings.")
        candidate = item.strip()
        if candidate:
            normalized.append(candidate)
    return normalized


class AppConfig(BaseModel):
    """Application metadata and workspace location."""

    model_config = ConfigDict(populate_by_name=True)
    title: str = "PromptRelay"
    window_class: str = Field(default="promptrelay", alias="class")
    workspace_root: str = "."
    start_in_direct_mode: bool = False

    @field_validator("title", "window_class", "workspace_root", mode="before")
    @classmethod
    def _validate_non_empty_string(cls, value: Any) -> str:
        return _non_empty_string(value)


class TerminalConfig(BaseModel):
    """Terminal transport settings and delivery timings.

    The delays are empirical: the agent CLI has no completion handshake, so
    the relay waits a fixed interval before pressing Enter and before
    reclaiming focus.
    """

    command: str = "claude"
    args: list[str] = Field(default_factory=list)
    name: str = "Claude Code"
    settle_delay_ms: int = Field(default=1000, ge=0, le=60_000)
    focus_delay_ms: int = Field(default=700, ge=0, le=60_000)
    focus_retry_offsets_ms: list[int] = Field(default_factory=lambda: [0, 100, 200])
    paste_length_threshold: int = Field(default=100, ge=1, le=100_000)
    startup_grace_ms: int = Field(default=1500, ge=0, le=60_000)

    @field_validator("command", "name", mode="before")
    @classmethod
    def _validate_required_string(cls, value: Any) -> str:
        return _non_empty_string(value)

    @field_validator("args", mode="before")
    @classmethod
    def _validate_args(cls, value: Any) -> list[str]:
        return _string_list(value, "args")

    @field_validator("focus_retry_offsets_ms", mode="before")
    @classmethod
    def _validate_offsets(cls, value: Any) -> list[int]:
        if not isinstance(value, list) or not value:
            raise ValueError("focus_retry_offsets_ms must be a non-empty list.")
        offsets: list[int] = []
        for item in value:
            if isinstance(item, bool) or not isinstance(item, int) or item < 0:
                raise ValueError("focus_retry_offsets_ms entries must be >= 0.")
            offsets.append(item)
        return sorted(offsets)


class DirectConfig(BaseModel):
    """Direct (stream-JSON) transport settings."""

    command: str = "claude"
    extra_args: list[str] = Field(default_factory=list)
    pause_grace_seconds: float = Field(default=3.0, ge=0.0, le=60.0)

    @field_validator("command", mode="before")
    @classmethod
    def _validate_command(cls, value: Any) -> str:
        return _non_empty_string(value)

    @field_validator("extra_args", mode="before")
    @classmethod
    def _validate_extra_args(cls, value: Any) -> list[str]:
        return _string_list(value, "extra_args")


class SuggestionsConfig(BaseModel):
    """Mention and slash-command suggestion behaviour."""

    debounce_ms: int = Field(default=250, ge=0, le=10_000)
    max_results: int = Field(default=50, ge=1, le=1_000)
    commit_history_depth: int = Field(default=50, ge=1, le=10_000)


class ImagesConfig(BaseModel):
    """Image attachment limits and temp storage."""

    max_bytes: int = Field(default=10 * 1024 * 1024, ge=1024, le=200 * 1024 * 1024)
    allowed_mime_types: list[str] = Field(
        default_factory=lambda: [
            "image/jpeg",
            "image/png",
            "image/gif",
            "image/webp",
            "image/svg+xml",
        ]
    )
    temp_dir: str = ""
    max_age_hours: int = Field(default=24, ge=1, le=24 * 365)

    @field_validator("allowed_mime_types", mode="before")
    @classmethod
    def _validate_mime_types(cls, value: Any) -> list[str]:
        types = [item.lower() for item in _string_list(value, "allowed_mime_types")]
        if not types:
            raise ValueError("allowed_mime_types must not be empty.")
        for item in types:
            if not MIME_TYPE_PATTERN.match(item):
                raise ValueError(f"Unsupported mime type {item!r}.")
        return types

    @field_validator("temp_dir", mode="before")
    @classmethod
    def _normalize_temp_dir(cls, value: Any) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError("temp_dir must be a string.")
        return value.strip()


class CommandsConfig(BaseModel):
    """Locations scanned for custom slash commands."""

    project_dir: str = ".claude/commands"
    user_dir: str = "~/.claude/commands"

    @field_validator("project_dir", "user_dir", mode="before")
    @classmethod
    def _validate_path_string(cls, value: Any) -> str:
        return _non_empty_string(value)


class KeybindsConfig(BaseModel):
    """Keyboard action mapping."""

    send_message: str = "ctrl+enter"
    toggle_direct_mode: str = "ctrl+t"
    pause_process: str = "escape"
    clear_direct_mode: str = "ctrl+l"
    cycle_agent_mode: str = "shift+tab"
    attach_image: str = "ctrl+o"
    launch_new: str = "f2"
    launch_continue: str = "f3"
    launch_history: str = "f4"
    rescan_commands: str = "f5"
    quit: str = "ctrl+q"

    @field_validator("*", mode="before")
    @classmethod
    def _validate_keybind(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Keybind must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("Keybind must not be empty.")
        return normalized


class LoggingConfig(BaseModel):
    """Logging behavior and output destinations."""

    level: str = "INFO"
    structured: bool = True
    log_to_file: bool = False
    log_file_path: str = "~/.local/state/promptrelay/app.log"

    @field_validator("level", mode="before")
    @classmethod
    def _validate_level(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Logging level must be a string.")
        normalized = value.strip().upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(f"Unsupported log level {normalized!r}.")
        return normalized

    @field_validator("log_file_path", mode="before")
    @classmethod
    def _validate_log_file_path(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("log_file_path must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("log_file_path must not be empty.")
        return normalized


class Config(BaseModel):
    """Root configuration model for all sections."""

    model_config = ConfigDict(populate_by_name=True)
    app: AppConfig = AppConfig()
    terminal: TerminalConfig = TerminalConfig()
    direct: DirectConfig = DirectConfig()
    suggestions: SuggestionsConfig = SuggestionsConfig()
    images: ImagesConfig = ImagesConfig()
    commands: CommandsConfig = CommandsConfig()
    keybinds: KeybindsConfig = KeybindsConfig()
    logging: LoggingConfig = LoggingConfig()

    @model_validator(mode="after")
    def _validate_focus_window(self) -> Config:
        # Focus retries must finish before a typical follow-up send settles.
        if self.terminal.focus_retry_offsets_ms[-1] > 10_000:
            raise ValueError("focus_retry_offsets_ms must stay within 10 seconds.")
        return self


DEFAULT_CONFIG: dict[str, dict[str, Any]] = Config().model_dump(by_alias=True)


def ensure_config_dir(config_dir: Path | None = None) -> Path:
    """Ensure that the config directory exists and return its path."""
    directory = config_dir or CONFIG_DIR
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.warning("Unable to create config directory %s: %s", directory, exc)
    return directory


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override values onto base values."""
    merged: dict[str, Any] = deepcopy(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _enforce_private_permissions(path: Path) -> None:
    """Best-effort enforcement of private file permissions on POSIX systems."""
    if os.name != "posix" or not path.exists():
        return
    try:
        path.chmod(0o600)
    except OSError as exc:
        LOGGER.warning("Unable to enforce 0600 permissions for %s: %s", path, exc)


def _safe_default_config() -> dict[str, dict[str, Any]]:
    """Return a deep copy of validated default config data."""
    return deepcopy(DEFAULT_CONFIG)


def _validate_config(raw: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Validate merged config and fallback to safe defaults when possible."""
    try:
        config = Config.model_validate(raw)
        return config.model_dump(by_alias=True)
    except ValidationError as exc:
        LOGGER.warning(
            "config.validation_failed",
            extra={"event": "config.validation_failed", "reason": str(exc)},
        )
        return _safe_default_config()
    except Exception as exc:  # noqa: BLE001 - unexpected model construction failure.
        raise ConfigValidationError(f"Unable to validate configuration: {exc}") from exc


def load_config(config_path: Path | None = None) -> dict[str, dict[str, Any]]:
    """
    Load configuration from TOML, merge with defaults, and validate.

    The optional ``config_path`` argument is intended for tests and tooling.
    """
    target_path = config_path or CONFIG_PATH
    ensure_config_dir(target_path.parent)

    raw_data: dict[str, Any] = {}
    if target_path.exists():
        _enforce_private_permissions(target_path)
        try:
            raw_data = tomllib.loads(target_path.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            LOGGER.warning("Failed to parse config at %s: %s", target_path, exc)
            raw_data = {}

    merged = (
        _deep_merge(DEFAULT_CONFIG, raw_data)
        if isinstance(raw_data, dict)
        else _safe_default_config()
    )
    return _validate_config(merged)
