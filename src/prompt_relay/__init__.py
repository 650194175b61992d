"""Top-level package for prompt-relay."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .app import PromptRelayApp
    from .bridge import EnvelopeBridge
    from .composer.context import ContextAssembler, OutboundMessage
    from .composer.controller import ComposerController
    from .config import ensure_config_dir, load_config
    from .dispatch.router import DispatchRouter
    from .exceptions import (
        ConfigValidationError,
        ImageValidationError,
        LifecycleError,
        PromptRelayError,
        TerminalTransportError,
    )
    from .state import DeliveryMode, DispatchPhase, ProcessState, SessionMode

__all__ = [
    "ComposerController",
    "ConfigValidationError",
    "ContextAssembler",
    "DeliveryMode",
    "DispatchPhase",
    "DispatchRouter",
    "EnvelopeBridge",
    "ImageValidationError",
    "LifecycleError",
    "OutboundMessage",
    "ProcessState",
    "PromptRelayApp",
    "PromptRelayError",
    "SessionMode",
    "TerminalTransportError",
    "ensure_config_dir",
    "load_config",
]


def __getattr__(name: str) -> Any:
    """Lazily import symbols to keep the Textual UI optional at import time."""
    if name in {"ensure_config_dir", "load_config"}:
        from .config import ensure_config_dir, load_config

        return {"ensure_config_dir": ensure_config_dir, "load_config": load_config}[name]
    if name in {
        "ConfigValidationError",
        "ImageValidationError",
        "LifecycleError",
        "PromptRelayError",
        "TerminalTransportError",
    }:
        from . import exceptions

        return getattr(exceptions, name)
    if name in {"DeliveryMode", "DispatchPhase", "ProcessState", "SessionMode"}:
        from . import state

        return getattr(state, name)
    if name in {"ContextAssembler", "OutboundMessage"}:
        from .composer.context import ContextAssembler, OutboundMessage

        return {"ContextAssembler": ContextAssembler, "OutboundMessage": OutboundMessage}[name]
    if name == "ComposerController":
        from .composer.controller import ComposerController

        return ComposerController
    if name == "DispatchRouter":
        from .dispatch.router import DispatchRouter

        return DispatchRouter
    if name == "EnvelopeBridge":
        from .bridge import EnvelopeBridge

        return EnvelopeBridge
    if name == "PromptRelayApp":
        from .app import PromptRelayApp

        return PromptRelayApp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
