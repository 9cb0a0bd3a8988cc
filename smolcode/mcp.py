"""Client side of the Model Context Protocol, talking to a server subprocess over stdio."""

from __future__ import annotations

import codecs
import json
import logging
import signal
import subprocess
import threading
from dataclasses import dataclass
from typing import Any, BinaryIO, Iterable, Optional

from smolcode.jsonrpc import Client, JsonRpcError, Transport

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
CLIENT_NAME = "smolcode-mcp-client"
CLIENT_VERSION = "0.1.0"

_READ_CHUNK = 4096
_EXIT_WAIT_SECONDS = 5.0


@dataclass
class ToolResultContent:
    """One piece of content returned by a tool call: text or base64 image data."""

    type: str
    text: str = ""
    data: str = ""
    mime_type: str = ""

    @classmethod
    def from_dict(cls, value: dict[str, Any]) -> "ToolResultContent":
        return cls(
            type=value.get("type", ""),
            text=value.get("text", "") or "",
            data=value.get("data", "") or "",
            mime_type=value.get("mimeType", "") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"type": self.type}
        if self.text:
            result["text"] = self.text
        if self.data:
            result["data"] = self.data
        if self.mime_type:
            result["mimeType"] = self.mime_type
        return result


@dataclass
class Tool:
    """Metadata of a tool offered by a server."""

    name: str
    description: str = ""
    input_schema: Any = None

    @classmethod
    def from_dict(cls, value: dict[str, Any]) -> "Tool":
        return cls(
            name=value.get("name", ""),
            description=value.get("description", "") or "",
            input_schema=value.get("inputSchema"),
        )


class Tools(list):
    """A list of :class:`Tool` with lookup by name."""

    def by_name(self, name: str) -> Optional[Tool]:
        """Return the first tool called ``name``, or None."""
        return next((tool for tool in self if tool.name == name), None)


class ToolCallError(Exception):
    """A tool call that the server reported as failed; ``content`` holds what it returned."""

    def __init__(self, message: str, content: Iterable[ToolResultContent] = ()) -> None:
        super().__init__(message)
        self.content = list(content)


class StdioTransport(Transport):
    """A transport that writes newline-terminated JSON and reads a stream of JSON values."""

    def __init__(self, reader: BinaryIO, writer: BinaryIO) -> None:
        self._reader = reader
        self._writer = writer
        self._read = getattr(reader, "read1", None) or reader.read
        self._text_decoder = codecs.getincrementaldecoder("utf-8")()
        self._json_decoder = json.JSONDecoder()
        self._buffer = ""

    def send(self, payload: bytes) -> None:
        try:
            self._writer.write(payload + b"\n")
            flush = getattr(self._writer, "flush", None)
            if callable(flush):
                flush()
        except (OSError, ValueError) as exc:
            raise OSError(f"stdio transport: failed to write payload: {exc}") from exc

    def receive(self) -> bytes:
        """Return the next complete JSON value; raise EOFError when the stream ends."""
        while True:
            stripped = self._buffer.lstrip()
            if stripped:
                try:
                    _, end = self._json_decoder.raw_decode(stripped)
                except json.JSONDecodeError as exc:
                    newline = stripped.find("\n", exc.pos)
                    if newline != -1:
                        self._buffer = stripped[newline + 1:]
                        raise ValueError(f"stdio transport: invalid JSON: {exc}") from exc
                else:
                    self._buffer = stripped[end:]
                    return stripped[:end].encode("utf-8")
            self._buffer = stripped

            chunk = self._read(_READ_CHUNK)
            if not chunk:
                self._buffer += self._text_decoder.decode(b"", final=True)
                if self._buffer.strip():
                    self._buffer = ""
                    raise ValueError("stdio transport: unexpected end of JSON input")
                raise EOFError("stdio transport: end of stream")
            self._buffer += self._text_decoder.decode(chunk)

    def close(self) -> None:
        for stream in (self._writer, self._reader):
            try:
                stream.close()
            except (OSError, ValueError):
                pass


class Server:
    """An MCP server run as a subprocess, with a JSON-RPC client attached to its stdio."""

    def __init__(self, server_id: str, command: str) -> None:
        argv = command.split()
        if not argv:
            raise ValueError("server command cannot be empty")
        self.id = server_id
        self._argv = argv
        self._process: Optional[subprocess.Popen] = None
        self._client: Optional[Client] = None
        self._closing = threading.Event()
        self.capabilities: dict[str, Any] = {}

    def __enter__(self) -> "Server":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def start(self, timeout: Optional[float] = None) -> None:
        """Start the subprocess and perform the initialization handshake."""
        self._closing.clear()
        self._process = subprocess.Popen(
            self._argv, stdin=subprocess.PIPE, stdout=subprocess.PIPE, bufsize=0
        )
        transport = StdioTransport(self._process.stdout, self._process.stdin)
        self._client = Client(transport)
        threading.Thread(target=self._listen, name=f"mcp-{self.id}", daemon=True).start()

        init_params = {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": {"name": CLIENT_NAME, "version": CLIENT_VERSION},
        }
        try:
            result = self._client.call("initialize", init_params, timeout=timeout)
        except (JsonRpcError, TimeoutError) as exc:
            self._close_quietly()
            raise JsonRpcError(f"jsonrpc call to 'initialize' failed: {exc}") from exc
        if isinstance(result, dict):
            self.capabilities = result.get("capabilities") or {}

        try:
            self._client.notify("notifications/initialized")
        except JsonRpcError as exc:
            self._close_quietly()
            raise JsonRpcError(
                f"jsonrpc notify to 'notifications/initialized' failed: {exc}"
            ) from exc

    def list_tools(self, timeout: Optional[float] = None) -> Tools:
        """Return the first page of tools the server offers."""
        result = self._request("tools/list", {}, timeout, "'tools/list'")
        tools = result.get("tools") if isinstance(result, dict) else None
        return Tools(Tool.from_dict(item) for item in tools or [])

    def call(
        self, tool_name: str, params: Optional[dict[str, Any]] = None, timeout: Optional[float] = None
    ) -> list[ToolResultContent]:
        """Call a tool and return its content; raise :class:`ToolCallError` if it failed."""
        payload = {"name": tool_name, "arguments": params}
        result = self._request("tools/call", payload, timeout, f"'tools/call' (tool: {tool_name})")
        if not isinstance(result, dict):
            result = {}
        content = [ToolResultContent.from_dict(item) for item in result.get("content") or []]
        if result.get("isError"):
            if content and content[0].type == "text":
                raise ToolCallError(
                    f"tool call for '{tool_name}' failed with server-side error: {content[0].text}",
                    content,
                )
            raise ToolCallError(f"tool call for '{tool_name}' failed with server-side error", content)
        return content

    def close(self) -> None:
        """Stop the subprocess and shut the client down."""
        self._closing.set()
        first_error: Optional[Exception] = None
        if self._process is not None:
            first_error = self._stop_process()
        if self._client is not None:
            try:
                self._client.close()
            except JsonRpcError as exc:
                if first_error is None:
                    first_error = exc
                else:
                    logger.error("additional error while closing rpc client: %s", exc)
        if first_error is not None:
            raise JsonRpcError(f"failed to close server '{self.id}': {first_error}") from first_error

    def _request(self, method: str, params: Any, timeout: Optional[float], label: str) -> Any:
        if self._client is None:
            raise JsonRpcError(f"server '{self.id}' has not been started")
        try:
            return self._client.call(method, params, timeout=timeout)
        except (JsonRpcError, TimeoutError) as exc:
            raise JsonRpcError(f"jsonrpc call to {label} failed: {exc}") from exc

    def _listen(self) -> None:
        client = self._client
        if client is None:
            return
        try:
            client.listen()
        except JsonRpcError as exc:
            if not self._closing.is_set() and not isinstance(exc.__cause__, EOFError):
                logger.error("MCP client listener error: %s", exc)

    def _stop_process(self) -> Optional[Exception]:
        process = self._process
        if process is None or process.poll() is not None:
            return None
        try:
            process.send_signal(signal.SIGINT)
        except (OSError, ValueError):
            try:
                process.kill()
            except OSError as exc:
                return exc
        try:
            process.wait(timeout=_EXIT_WAIT_SECONDS)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
        return None

    def _close_quietly(self) -> None:
        try:
            self.close()
        except JsonRpcError as exc:
            logger.debug("error while cleaning up server '%s': %s", self.id, exc)