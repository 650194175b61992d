"""Image attachments: validation, temp-file persistence and references.

Clipboard and drop payloads arrive as bytes and are written under a
per-session temp directory so the agent CLI can read them by path.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
import logging
import mimetypes
import os
from pathlib import Path
import re
import tempfile
import time
from typing import Literal
import uuid

from .exceptions import ImageValidationError

LOGGER = logging.getLogger(__name__)

DEFAULT_ALLOWED_MIME_TYPES: frozenset[str] = frozenset(
    {"image/jpeg", "image/png", "image/gif", "image/webp", "image/svg+xml"}
)
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10 MB

IMAGE_EXTENSIONS: frozenset[str] = frozenset(
    {".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg"}
)

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
_DATA_URL = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,(?P<data>.*)$", re.DOTALL)

ImageOrigin = Literal["clipboard", "file_dialog", "drop"]


@dataclass(frozen=True)
class ImageAttachment:
    """A pending image: raw bytes (clipboard/drop) or a local path."""

    name: str
    origin: ImageOrigin
    data: bytes | None = None
    path: str | None = None
    mime_type: str = ""

    def __post_init__(self) -> None:
        if (self.data is None) == (self.path is None):
            raise ValueError("ImageAttachment needs exactly one of data or path.")


@dataclass
class ImageResolution:
    """Outcome of resolving pending images to readable local paths."""

    paths: list[str] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)

    @property
    def warning(self) -> str | None:
        if not self.failures:
            return None
        names = ", ".join(self.failures)
        return f"Failed to attach {len(self.failures)} image(s): {names}"


def guess_mime_type(name: str) -> str:
    mime, _ = mimetypes.guess_type(name)
    if mime is None and name.lower().endswith(".webp"):
        return "image/webp"
    return mime or ""


def is_image_path(path: str) -> bool:
    return Path(path).suffix.lower() in IMAGE_EXTENSIONS


def sanitize_file_name(name: str) -> str:
    """Keep only filesystem-safe characters from a user supplied name."""
    base = Path(name).name or "image"
    return _UNSAFE_NAME_CHARS.sub("_", base)


def decode_data_url(payload: str) -> tuple[bytes, str]:
    """Decode ``data:<mime>;base64,<data>`` (or bare base64) into bytes."""
    match = _DATA_URL.match(payload)
    mime = ""
    raw = payload
    if match is not None:
        mime = match.group("mime")
        raw = match.group("data")
    try:
        return base64.b64decode(raw, validate=True), mime
    except (binascii.Error, ValueError) as exc:
        raise ImageValidationError(f"Invalid base64 image data: {exc}") from exc


def format_image_references(paths: list[str]) -> str:
    """Render resolved image paths as the block appended to a message."""
    if not paths:
        return ""
    lines = [f"Attached Image {index} => '{path}'" for index, path in enumerate(paths, 1)]
    return "\n<ATTACHED_IMAGES>\n" + "\n".join(lines) + "\n</ATTACHED_IMAGES>\n"


class ImageStore:
    """Persist and validate images for one relay session."""

    def __init__(
        self,
        temp_root: Path | None = None,
        *,
        max_bytes: int = DEFAULT_MAX_BYTES,
        allowed_mime_types: frozenset[str] | set[str] | list[str] = DEFAULT_ALLOWED_MIME_TYPES,
    ) -> None:
        root = temp_root or Path(tempfile.gettempdir()) / "prompt-relay"
        self.directory = root / uuid.uuid4().hex[:12]
        self.max_bytes = max_bytes
        self.allowed_mime_types = frozenset(m.lower() for m in allowed_mime_types)
        self._saved: dict[Path, float] = {}

    def validate(self, name: str, mime_type: str, size: int) -> None:
        """Raise ImageValidationError when type or size is unacceptable."""
        if mime_type.lower() not in self.allowed_mime_types:
            raise ImageValidationError(f"Unsupported image type for {name}: {mime_type or 'unknown'}")
        if size == 0:
            raise ImageValidationError(f"Image is empty: {name}")
        if size > self.max_bytes:
            limit_mb = self.max_bytes / (1024 * 1024)
            raise ImageValidationError(f"Image too large: {name} (limit {limit_mb:.0f} MB)")

    def save_bytes(self, data: bytes, name: str, mime_type: str = "") -> Path:
        """Write an image payload to the session directory and verify it."""
        mime = mime_type or guess_mime_type(name)
        self.validate(name, mime, len(data))
        self.directory.mkdir(parents=True, exist_ok=True)
        target = self.directory / f"{int(time.time() * 1000)}-{sanitize_file_name(name)}"
        target.write_bytes(data)
        try:
            if target.stat().st_size == 0:
                raise ImageValidationError(f"Saved image is empty: {name}")
            with target.open("rb") as handle:
                handle.read(1)
        except (OSError, ImageValidationError):
            target.unlink(missing_ok=True)
            raise
        self._saved[target] = time.time()
        LOGGER.debug(
            "images.saved",
            extra={"event": "images.saved", "path": str(target), "bytes": len(data)},
        )
        return target

    def check_path(self, path: str) -> Path:
        """Return ``path`` resolved when it is a readable, acceptable image."""
        resolved = Path(path).expanduser()
        if not resolved.is_file():
            raise ImageValidationError(f"Image not found: {path}")
        if not os.access(resolved, os.R_OK):
            raise ImageValidationError(f"Image not readable: {path}")
        self.validate(resolved.name, guess_mime_type(resolved.name), resolved.stat().st_size)
        return resolved

    def resolve(self, images: list[ImageAttachment]) -> ImageResolution:
        """Resolve every attachment to a path; failures never stop the rest."""
        resolution = ImageResolution()
        for image in images:
            try:
                if image.data is not None:
                    path = self.save_bytes(image.data, image.name, image.mime_type)
                else:
                    path = self.check_path(image.path or "")
            except (ImageValidationError, OSError) as exc:
                LOGGER.info(
                    "images.resolve_failed",
                    extra={"event": "images.resolve_failed", "image": image.name, "reason": str(exc)},
                )
                resolution.failures.append(image.name)
                continue
            resolution.paths.append(str(path))
        return resolution

    def cleanup_older_than(self, max_age_seconds: float) -> int:
        """Delete saved images older than ``max_age_seconds``; return the count."""
        cutoff = time.time() - max_age_seconds
        stale = [path for path, saved_at in self._saved.items() if saved_at < cutoff]
        for path in stale:
            self._remove(path)
        return len(stale)

    def cleanup_all(self) -> None:
        for path in list(self._saved):
            self._remove(path)
        try:
            self.directory.rmdir()
        except OSError:
            pass

    def _remove(self, path: Path) -> None:
        self._saved.pop(path, None)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            LOGGER.warning(
                "images.cleanup_failed",
                extra={"event": "images.cleanup_failed", "path": str(path), "reason": str(exc)},
            )
