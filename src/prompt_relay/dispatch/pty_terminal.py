"""Run the agent CLI on a pseudo-terminal owned by the relay."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
import logging
import os
from pathlib import Path
import pty
import signal

from ..exceptions import TerminalTransportError

LOGGER = logging.getLogger(__name__)

READ_CHUNK_BYTES = 4096
KILL_GRACE_SECONDS = 3.0


class PtyTerminal:
    """A child process attached to a PTY, written to like a keyboard."""

    def __init__(
        self,
        name: str,
        process: asyncio.subprocess.Process,
        master_fd: int,
        *,
        startup_grace_ms: float = 1500,
    ) -> None:
        self.name = name
        self._process = process
        self._master_fd: int | None = master_fd
        self._startup_grace_ms = startup_grace_ms
        self._ready = asyncio.Event()
        self._on_output: Callable[[str], None] | None = None
        self._on_show: Callable[[bool], None] | None = None
        self._on_closed: Callable[[PtyTerminal], None] | None = None
        self._decoder_tail = b""
        asyncio.get_running_loop().add_reader(master_fd, self._read_available)
        self._waiter = asyncio.get_running_loop().create_task(self._watch_exit())

    @classmethod
    async def spawn(
        cls,
        command: str,
        args: Sequence[str] = (),
        *,
        name: str = "Claude Code",
        cwd: Path | None = None,
        startup_grace_ms: float = 1500,
    ) -> PtyTerminal:
        master_fd, slave_fd = pty.openpty()
        env = dict(os.environ)
        env.setdefault("TERM", "xterm-256color")
        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *args,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                cwd=str(cwd) if cwd else None,
                env=env,
                start_new_session=True,
            )
        except OSError as exc:
            os.close(master_fd)
            raise TerminalTransportError(f"Unable to start {command!r}: {exc}") from exc
        finally:
            os.close(slave_fd)
        LOGGER.info(
            "terminal.spawned",
            extra={"event": "terminal.spawned", "command": command, "args": list(args), "pid": process.pid},
        )
        return cls(name, process, master_fd, startup_grace_ms=startup_grace_ms)

    def on_output(self, callback: Callable[[str], None]) -> None:
        self._on_output = callback

    def on_show(self, callback: Callable[[bool], None]) -> None:
        """Register the UI hook that reveals the terminal pane."""
        self._on_show = callback

    def on_closed(self, callback: Callable[[PtyTerminal], None]) -> None:
        self._on_closed = callback

    @property
    def alive(self) -> bool:
        return self._master_fd is not None and self._process.returncode is None

    def _read_available(self) -> None:
        if self._master_fd is None:
            return
        try:
            data = os.read(self._master_fd, READ_CHUNK_BYTES)
        except OSError:
            data = b""
        if not data:
            self._detach_reader()
            return
        self._ready.set()
        chunk = self._decoder_tail + data
        try:
            text = chunk.decode("utf-8")
            self._decoder_tail = b""
        except UnicodeDecodeError as exc:
            text = chunk[: exc.start].decode("utf-8", errors="replace")
            self._decoder_tail = chunk[exc.start :]
        if text and self._on_output is not None:
            self._on_output(text)

    def _detach_reader(self) -> None:
        if self._master_fd is None:
            return
        loop = asyncio.get_running_loop()
        loop.remove_reader(self._master_fd)
        os.close(self._master_fd)
        self._master_fd = None

    async def _watch_exit(self) -> None:
        returncode = await self._process.wait()
        LOGGER.info(
            "terminal.exited",
            extra={"event": "terminal.exited", "terminal": self.name, "returncode": returncode},
        )
        self._detach_reader()
        if self._on_closed is not None:
            self._on_closed(self)

    def show(self, preserve_focus: bool = True) -> None:
        if self._on_show is not None:
            self._on_show(preserve_focus)

    def send_text(self, text: str, add_newline: bool = True) -> None:
        if self._master_fd is None:
            raise TerminalTransportError(f"Terminal {self.name!r} is closed")
        payload = text + ("\r" if add_newline else "")
        try:
            os.write(self._master_fd, payload.encode("utf-8"))
        except OSError as exc:
            raise TerminalTransportError(f"Write to {self.name!r} failed: {exc}") from exc

    async def wait_ready(self) -> None:
        """Return on first output, or once the startup grace period passed."""
        try:
            await asyncio.wait_for(self._ready.wait(), self._startup_grace_ms / 1000.0)
        except asyncio.TimeoutError:
            LOGGER.debug(
                "terminal.ready_timeout",
                extra={"event": "terminal.ready_timeout", "terminal": self.name},
            )

    async def close(self) -> None:
        if self._process.returncode is None:
            try:
                os.killpg(self._process.pid, signal.SIGTERM)
            except ProcessLookupError:
                pass
        try:
            await asyncio.wait_for(asyncio.shield(self._waiter), KILL_GRACE_SECONDS)
        except asyncio.TimeoutError:
            try:
                os.killpg(self._process.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
            await self._waiter
