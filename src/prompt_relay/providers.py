"""Workspace-backed suggestion providers: files, git commits, diagnostics."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
import json
import logging
import os
from pathlib import Path
import shutil
import time

from .composer.context import DiagnosticRef
from .composer.suggestions import CommitRef, FileRef

LOGGER = logging.getLogger(__name__)

SKIPPED_DIRECTORIES: frozenset[str] = frozenset(
    {"node_modules", "__pycache__", "venv", "build", "dist", "target"}
)
SEVERITY_ORDER: dict[str, int] = {"Error": 0, "Warning": 1, "Information": 2, "Hint": 3}

# Unit separator keeps commit subjects containing tabs or pipes intact.
_GIT_FIELD_SEP = "\x1f"
_GIT_LOG_FORMAT = _GIT_FIELD_SEP.join(["%H", "%s", "%an", "%ad"])


def _walk_workspace(root: Path) -> list[FileRef]:
    entries: list[FileRef] = []
    for current, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            d for d in dirnames if not d.startswith(".") and d not in SKIPPED_DIRECTORIES
        )
        relative_dir = Path(current).relative_to(root)
        for dirname in dirnames:
            rel = (relative_dir / dirname).as_posix()
            entries.append(FileRef(path=f"/{rel}", kind="folder", label=dirname))
        for filename in sorted(filenames):
            if filename.startswith("."):
                continue
            rel = (relative_dir / filename).as_posix()
            entries.append(FileRef(path=f"/{rel}", kind="file", label=filename))
    return entries


def entries_from_listing(lines: Iterable[str]) -> list[FileRef]:
    """Turn relative file paths into file refs plus one ref per parent folder."""
    folders: dict[str, FileRef] = {}
    files: list[FileRef] = []
    for line in sorted(lines):
        rel = line.strip().replace(os.sep, "/").removeprefix("./")
        if not rel:
            continue
        parts = rel.split("/")
        if any(part.startswith(".") or part in SKIPPED_DIRECTORIES for part in parts):
            continue
        for depth in range(1, len(parts)):
            folder = "/".join(parts[:depth])
            if folder not in folders:
                folders[folder] = FileRef(path=f"/{folder}", kind="folder", label=parts[depth - 1])
        files.append(FileRef(path=f"/{rel}", kind="file", label=parts[-1]))
    return [*folders.values(), *files]


def ripgrep_binary() -> str | None:
    for name in ("rg", "ripgrep"):
        found = shutil.which(name)
        if found:
            return found
    return None


async def _ripgrep_listing(root: Path) -> list[FileRef] | None:
    """List files with ``rg --files``, which honours ``.gitignore``.

    Returns ``None`` when ripgrep is missing or fails so the caller can walk.
    """
    rg = ripgrep_binary()
    if rg is None:
        return None
    try:
        proc = await asyncio.create_subprocess_exec(
            rg,
            "--files",
            cwd=str(root),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        LOGGER.info(
            "providers.rg_failed",
            extra={"event": "providers.rg_failed", "error": str(exc)},
        )
        return None
    stdout, stderr = await proc.communicate()
    # Exit code 1 means no files matched.
    if proc.returncode not in (0, 1):
        LOGGER.info(
            "providers.rg_failed",
            extra={
                "event": "providers.rg_failed",
                "returncode": proc.returncode,
                "stderr": stderr.decode(errors="replace").strip(),
            },
        )
        return None
    return entries_from_listing(stdout.decode(errors="replace").splitlines())


def rank_files(entries: Iterable[FileRef], query: str, limit: int) -> list[FileRef]:
    """Filter by substring and order: exact label, label prefix, path hit, short path."""
    needle = query.lower()
    matches = [
        entry
        for entry in entries
        if needle in entry.path.lower() or needle in entry.display.lower()
    ]

    def _key(entry: FileRef) -> tuple[bool, bool, bool, int]:
        label = entry.display.lower()
        return (
            label != needle,
            not label.startswith(needle),
            needle not in entry.path.lower(),
            len(entry.path),
        )

    return sorted(matches, key=_key)[:limit]


class WorkspaceFileSearch:
    """Case-insensitive file and folder search under the workspace root.

    The listing comes from ripgrep when it is installed and from a directory
    walk otherwise.  It is reused for ``listing_ttl_seconds`` so typing a
    mention does not rescan the workspace on every keystroke.
    """

    def __init__(
        self,
        root: Path,
        *,
        max_results: int = 50,
        listing_ttl_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.root = root
        self.max_results = max_results
        self.listing_ttl_seconds = listing_ttl_seconds
        self._clock = clock
        self._listing: list[FileRef] | None = None
        self._listed_at = 0.0
        self._listing_lock = asyncio.Lock()

    async def listing(self) -> list[FileRef]:
        async with self._listing_lock:
            now = self._clock()
            if self._listing is not None and now - self._listed_at < self.listing_ttl_seconds:
                return self._listing
            entries = await _ripgrep_listing(self.root)
            if entries is None:
                entries = await asyncio.to_thread(_walk_workspace, self.root)
            LOGGER.debug(
                "providers.workspace_listed",
                extra={"event": "providers.workspace_listed", "entries": len(entries)},
            )
            self._listing = entries
            self._listed_at = now
            return entries

    async def __call__(self, query: str) -> list[FileRef]:
        if not query:
            return []
        return rank_files(await self.listing(), query, self.max_results)


class GitCommitSearch:
    """Recent commits from ``git log`` filtered by hash, subject or author."""

    def __init__(self, root: Path, *, depth: int = 50, git_binary: str = "git") -> None:
        self.root = root
        self.depth = depth
        self.git_binary = git_binary

    async def recent_commits(self) -> list[CommitRef]:
        if shutil.which(self.git_binary) is None:
            LOGGER.info(
                "providers.git_missing",
                extra={"event": "providers.git_missing", "binary": self.git_binary},
            )
            return []
        proc = await asyncio.create_subprocess_exec(
            self.git_binary,
            "log",
            f"--max-count={self.depth}",
            f"--pretty=format:{_GIT_LOG_FORMAT}",
            "--date=short",
            cwd=str(self.root),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            LOGGER.info(
                "providers.git_log_failed",
                extra={
                    "event": "providers.git_log_failed",
                    "returncode": proc.returncode,
                    "stderr": stderr.decode(errors="replace").strip(),
                },
            )
            return []
        commits: list[CommitRef] = []
        for line in stdout.decode(errors="replace").splitlines():
            parts = line.split(_GIT_FIELD_SEP)
            if len(parts) != 4:
                continue
            commit_hash, subject, author, date = parts
            commits.append(
                CommitRef(hash=commit_hash, subject=subject, author=author or "Unknown", date=date)
            )
        return commits

    async def __call__(self, query: str) -> list[CommitRef]:
        commits = await self.recent_commits()
        needle = query.lower()
        return [
            commit
            for commit in commits
            if commit.hash.startswith(needle)
            or commit.short_hash.startswith(needle)
            or needle in commit.subject.lower()
            or needle in commit.author.lower()
        ]


class DiagnosticsStore:
    """Current workspace diagnostics, most severe first.

    Selection ids are the string index of a diagnostic in :meth:`list`.
    """

    def __init__(self) -> None:
        self._diagnostics: list[DiagnosticRef] = []

    def replace(self, diagnostics: Iterable[DiagnosticRef]) -> None:
        self._diagnostics = sorted(
            diagnostics,
            key=lambda d: (SEVERITY_ORDER.get(d.severity, len(SEVERITY_ORDER)), d.file),
        )

    def list(self) -> list[DiagnosticRef]:
        return list(self._diagnostics)

    def select(self, ids: Iterable[str | int]) -> list[DiagnosticRef]:
        selected: list[DiagnosticRef] = []
        for raw_id in ids:
            try:
                index = int(raw_id)
            except (TypeError, ValueError):
                LOGGER.info(
                    "providers.problem_id_invalid",
                    extra={"event": "providers.problem_id_invalid", "id": str(raw_id)},
                )
                continue
            if 0 <= index < len(self._diagnostics):
                selected.append(self._diagnostics[index])
        return selected

    def load_file(self, path: Path) -> int:
        """Replace the store with diagnostics read from a JSON list.

        Each entry needs ``file``, ``line``, ``column``, ``severity`` and
        ``message``; ``source`` is optional.  Malformed entries are skipped.
        """
        raw = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(raw, list):
            raise ValueError(f"Diagnostics file must hold a JSON list: {path}")
        diagnostics: list[DiagnosticRef] = []
        for entry in raw:
            try:
                diagnostics.append(
                    DiagnosticRef(
                        file=str(entry["file"]),
                        line=int(entry["line"]),
                        column=int(entry["column"]),
                        severity=str(entry["severity"]),
                        message=str(entry["message"]),
                        source=str(entry["source"]) if entry.get("source") else None,
                    )
                )
            except (KeyError, TypeError, ValueError, AttributeError):
                LOGGER.info(
                    "providers.diagnostic_skipped",
                    extra={"event": "providers.diagnostic_skipped", "entry": repr(entry)[:200]},
                )
        self.replace(diagnostics)
        return len(diagnostics)
