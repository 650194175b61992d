"""Merge composed text, selected diagnostics and images into one message."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

from ..images import ImageAttachment, ImageStore, format_image_references

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiagnosticRef:
    file: str
    line: int
    column: int
    severity: str
    message: str
    source: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "file": self.file,
            "line": self.line,
            "column": self.column,
            "severity": self.severity,
            "message": self.message,
            "source": self.source,
        }


@dataclass(frozen=True)
class OutboundMessage:
    """Everything one send carries; never mutated after assembly."""

    text: str
    images: tuple[ImageAttachment, ...] = ()
    diagnostics: tuple[DiagnosticRef, ...] = ()


@dataclass(frozen=True)
class AssemblyResult:
    payload: str
    warning: str | None = None


def format_problems(diagnostics: tuple[DiagnosticRef, ...] | list[DiagnosticRef]) -> str:
    """Render diagnostics as the ``<problems>`` block the agent CLI reads."""
    if not diagnostics:
        return ""
    block = "\n<problems>\n"
    for index, diagnostic in enumerate(diagnostics, 1):
        source = f" ({diagnostic.source})" if diagnostic.source else ""
        block += (
            f"{index}. @{diagnostic.file}#L{diagnostic.line} "
            f"Column:{diagnostic.column}{source}\n"
            f"   {diagnostic.severity}: {diagnostic.message}\n\n"
        )
    return block + "</problems>\n\n"


def is_empty(message: OutboundMessage) -> bool:
    return not message.text.strip() and not message.images and not message.diagnostics


class ContextAssembler:
    """Build the outbound text: trimmed text, problems block, image references."""

    def __init__(self, image_store: ImageStore) -> None:
        self.image_store = image_store

    def assemble(self, message: OutboundMessage) -> AssemblyResult | None:
        """Return the payload, or ``None`` when there is nothing to send."""
        if is_empty(message):
            return None

        payload = message.text.strip() + format_problems(message.diagnostics)
        warning = None
        if message.images:
            resolution = self.image_store.resolve(list(message.images))
            payload += format_image_references(resolution.paths)
            warning = resolution.warning
            if warning is not None:
                LOGGER.warning(
                    "context.images_dropped",
                    extra={
                        "event": "context.images_dropped",
                        "failed": resolution.failures,
                        "attached": len(resolution.paths),
                    },
                )
        return AssemblyResult(payload=payload, warning=warning)
