"""Domain exception hierarchy for the prompt relay."""

from __future__ import annotations


class PromptRelayError(RuntimeError):
    """Base class for all domain-level relay errors."""


class ConfigValidationError(PromptRelayError):
    """Raised when configuration cannot be validated safely."""


class LifecycleError(PromptRelayError):
    """Raised on an illegal terminal process lifecycle transition."""


class TerminalTransportError(PromptRelayError):
    """Raised when text cannot be written to the terminal process."""


class ImageValidationError(PromptRelayError):
    """Raised when an image attachment fails type, size or read checks."""
