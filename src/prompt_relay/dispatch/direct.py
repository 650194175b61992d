"""Direct mode: one ``claude -p`` stream-JSON process per message.

Every send spawns the CLI with ``--output-format stream-json`` and, once a
session id is known, ``--resume <id>`` so the conversation continues.  Each
stdout line is a JSON message that becomes a :class:`DirectModeResponse`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
import json
import logging
from pathlib import Path
from typing import Any

LOGGER = logging.getLogger(__name__)

TOOL_RESULT_PREVIEW_CHARS = 500
THINKING_PREVIEW_CHARS = 150

DISPLAY_NAMES: dict[str, str] = {
    "user_input": "You",
    "system": "Session",
    "assistant": "Claude",
    "user": "Tool Result",
    "result": "Result",
    "error": "Error",
}


@dataclass(frozen=True)
class DirectModeResponse:
    type: str
    subtype: str | None = None
    content: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    is_update: bool = False
    terminal: bool = False

    @property
    def display_name(self) -> str:
        return DISPLAY_NAMES.get(self.type, self.type.title())

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "subtype": self.subtype,
            "content": self.content if self.error is None else self.error,
            "metadata": dict(self.metadata),
            "isUpdate": self.is_update,
        }


def _system_content(message: dict[str, Any]) -> str:
    parts: list[str] = []
    if message.get("model"):
        parts.append(f"Model: {message['model']}")
    tools = message.get("tools") or []
    if tools:
        parts.append(f"Available tools: {len(tools)}")
    servers = [
        server.get("name", "")
        for server in message.get("mcp_servers") or []
        if isinstance(server, dict) and server.get("status") == "connected"
    ]
    if any(servers):
        parts.append(f"MCP servers: {', '.join(s for s in servers if s)}")
    return "Session initialized" + ("\n" + "\n".join(parts) if parts else "")


def _assistant_content(message: dict[str, Any]) -> str | None:
    content = (message.get("message") or {}).get("content")
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return None
    parts: list[str] = []
    for item in content:
        if not isinstance(item, dict):
            continue
        kind = item.get("type")
        if kind == "text" and item.get("text"):
            parts.append(item["text"])
        elif kind == "tool_use":
            tool_input = item.get("input")
            keys = f" ({', '.join(tool_input)})" if isinstance(tool_input, dict) and tool_input else ""
            parts.append(f"🔧 Using tool: {item.get('name') or 'unknown'}{keys}")
        elif kind == "thinking" and item.get("thinking"):
            thinking = item["thinking"]
            if len(thinking) > THINKING_PREVIEW_CHARS:
                thinking = thinking[:THINKING_PREVIEW_CHARS] + "..."
            parts.append(f"🤔 Thinking: {thinking}")
    return "\n".join(parts) if parts else None


def _user_content(message: dict[str, Any]) -> str | None:
    content = (message.get("message") or {}).get("content")
    if not isinstance(content, list):
        return None
    results: list[str] = []
    for item in content:
        if not isinstance(item, dict) or item.get("type") != "tool_result":
            continue
        body = item.get("content")
        if isinstance(body, str) and len(body) > TOOL_RESULT_PREVIEW_CHARS:
            body = body[:TOOL_RESULT_PREVIEW_CHARS] + "...[truncated]"
        tool_id = item.get("tool_use_id") or ""
        suffix = f" ({tool_id[-8:]})" if tool_id else ""
        results.append(f"📊 Tool result{suffix}:\n{body}")
    return "\n\n".join(results) if results else None


def parse_stream_message(message: dict[str, Any]) -> DirectModeResponse:
    """Map one stream-JSON message to a response."""
    kind = str(message.get("type", "unknown"))
    subtype = message.get("subtype")
    metadata: dict[str, Any] = {}
    if message.get("session_id"):
        metadata["sessionId"] = message["session_id"]

    if kind == "result":
        metadata.update(
            {"cost": message.get("cost_usd"), "duration": message.get("duration_ms")}
        )
        if message.get("is_error"):
            return DirectModeResponse(
                type="error",
                subtype=subtype,
                error=f"Claude Error: {message.get('result', '')}",
                metadata=metadata,
                terminal=True,
            )
        return DirectModeResponse(
            type="result",
            subtype=subtype,
            content=message.get("result"),
            metadata=metadata,
            terminal=True,
        )
    if kind == "system":
        metadata.update(
            {
                "tools": message.get("tools"),
                "model": message.get("model"),
                "mcpServers": message.get("mcp_servers"),
            }
        )
        return DirectModeResponse(type="system", subtype=subtype, content=_system_content(message), metadata=metadata)
    if kind == "assistant":
        usage = (message.get("message") or {}).get("usage")
        if usage is not None:
            metadata["usage"] = usage
        return DirectModeResponse(type="assistant", subtype=subtype, content=_assistant_content(message), metadata=metadata)
    if kind == "user":
        return DirectModeResponse(type="user", subtype=subtype, content=_user_content(message), metadata=metadata)
    if kind == "error":
        return DirectModeResponse(
            type="error",
            subtype=subtype,
            error=f"Claude Error: {message.get('error', '')}",
            metadata=metadata,
            terminal=True,
        )
    return DirectModeResponse(type=kind, subtype=subtype, metadata=metadata)


def build_command(
    command: str,
    text: str,
    session_id: str | None,
    extra_args: Sequence[str] = (),
) -> list[str]:
    args = [command, "-p", text, "--output-format", "stream-json", "--verbose", *extra_args]
    if session_id:
        args += ["--resume", session_id]
    return args


class DirectSession:
    """Stream responses for one conversation with the agent CLI."""

    def __init__(
        self,
        *,
        command: str = "claude",
        extra_args: Sequence[str] = (),
        cwd: Path | None = None,
        pause_grace_seconds: float = 3.0,
    ) -> None:
        self.command = command
        self.extra_args = list(extra_args)
        self.cwd = cwd
        self.pause_grace_seconds = pause_grace_seconds
        self.session_id: str | None = None
        self.transcript: list[DirectModeResponse] = []
        self._last: DirectModeResponse | None = None
        self._process: asyncio.subprocess.Process | None = None
        self._running = False
        self._paused = False
        self._terminal_sent = False
        self._lock = asyncio.Lock()
        self._on_response: Callable[[DirectModeResponse], None] | None = None
        self._on_running_change: Callable[[bool], None] | None = None

    def on_response(self, callback: Callable[[DirectModeResponse], None]) -> None:
        self._on_response = callback

    def on_running_change(self, callback: Callable[[bool], None]) -> None:
        """Register the ``updateProcessState`` hook."""
        self._on_running_change = callback

    @property
    def is_running(self) -> bool:
        return self._running

    def _set_running(self, running: bool) -> None:
        if running == self._running:
            return
        self._running = running
        if self._on_running_change is not None:
            self._on_running_change(running)

    def _emit(self, response: DirectModeResponse) -> None:
        self.transcript.append(response)
        if self._on_response is not None:
            self._on_response(response)
        if response.terminal:
            self._terminal_sent = True
            self._set_running(False)

    def _emit_error(self, message: str, *, terminal: bool = False) -> None:
        LOGGER.warning(
            "direct.error",
            extra={"event": "direct.error", "error": message, "terminal": terminal},
        )
        self._emit(DirectModeResponse(type="error", error=message, terminal=terminal))

    def _handle_message(self, message: dict[str, Any]) -> None:
        if message.get("session_id"):
            self.session_id = str(message["session_id"])
        response = parse_stream_message(message)
        last = self._last
        if (
            response.type == "result"
            and last is not None
            and last.type == "assistant"
            and response.content
            and last.content
            and response.content.strip() == last.content.strip()
        ):
            response = replace(
                last,
                type="result",
                subtype=response.subtype,
                metadata=response.metadata,
                is_update=True,
                terminal=True,
            )
        self._last = response
        self._emit(response)

    async def send(self, text: str) -> None:
        """Run one prompt to completion; errors become ``error`` responses."""
        async with self._lock:
            self._paused = False
            self._terminal_sent = False
            self._emit(DirectModeResponse(type="user_input", subtype="prompt", content=text))
            self._set_running(True)
            argv = build_command(self.command, text, self.session_id, self.extra_args)
            LOGGER.info(
                "direct.spawn",
                extra={"event": "direct.spawn", "resume": bool(self.session_id), "chars": len(text)},
            )
            try:
                process = await asyncio.create_subprocess_exec(
                    *argv,
                    cwd=str(self.cwd) if self.cwd else None,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as exc:
                self._emit_error(f"Failed to start Claude CLI: {exc}", terminal=True)
                return
            self._process = process
            try:
                await asyncio.gather(
                    self._read_stdout(process.stdout), self._read_stderr(process.stderr)
                )
                returncode = await process.wait()
            finally:
                self._process = None
            if self._paused or self._terminal_sent:
                return
            # Every request ends with exactly one terminal response.
            if returncode != 0:
                self._emit_error(f"Claude CLI exited with code {returncode}", terminal=True)
            else:
                self._emit(
                    DirectModeResponse(type="result", subtype="no_result", content="", terminal=True)
                )

    async def _read_stdout(self, stream: asyncio.StreamReader | None) -> None:
        if stream is None:
            return
        async for raw_line in stream:
            line = raw_line.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            try:
                message = json.loads(line)
            except json.JSONDecodeError as exc:
                self._emit_error(f"Message processing error: {exc}")
                continue
            if isinstance(message, dict):
                self._handle_message(message)

    async def _read_stderr(self, stream: asyncio.StreamReader | None) -> None:
        if stream is None:
            return
        async for raw_line in stream:
            line = raw_line.decode("utf-8", errors="replace").strip()
            if line:
                self._emit_error(f"CLI Error: {line}")

    async def pause(self) -> None:
        """Stop the in-flight computation; the session id is kept."""
        process = self._process
        self._paused = True
        if process is not None and process.returncode is None:
            process.terminate()
            try:
                await asyncio.wait_for(process.wait(), self.pause_grace_seconds)
            except asyncio.TimeoutError:
                process.kill()
        LOGGER.info("direct.paused", extra={"event": "direct.paused"})
        self._set_running(False)

    async def reset(self) -> None:
        """Forget the conversation: stop any process and drop the session id."""
        await self.pause()
        self.session_id = None
        self._last = None
        self.transcript.clear()
