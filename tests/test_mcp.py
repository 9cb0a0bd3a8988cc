import io
import json
import sys

import pytest

from smolcode.jsonrpc import JsonRpcError
from smolcode.mcp import (
    Server,
    StdioTransport,
    Tool,
    ToolCallError,
    ToolResultContent,
    Tools,
)

FAKE_SERVER = r'''
import json
import sys

log_path = sys.argv[1]
mode = sys.argv[2]

def reply(message):
    sys.stdout.write(json.dumps(message) + "\n")
    sys.stdout.flush()

try:
    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue
        msg = json.loads(line)
        with open(log_path, "a") as log:
            log.write(json.dumps(msg) + "\n")
        if "id" not in msg:
            continue
        method = msg["method"]
        if method == "initialize":
            if mode == "fail-init":
                reply({"jsonrpc": "2.0", "id": msg["id"],
                       "error": {"code": -32000, "message": "init refused"}})
                continue
            result = {"capabilities": {"tools": {}}}
        elif method == "tools/list":
            result = {"tools": [
                {"name": "echo", "description": "Echo text",
                 "inputSchema": {"type": "object"}},
                {"name": "fail", "description": "Always fails",
                 "inputSchema": {"type": "object"}},
            ]}
        elif method == "tools/call":
            params = msg["params"]
            args = params.get("arguments") or {}
            if params["name"] == "fail":
                result = {"content": [{"type": "text", "text": "boom"}], "isError": True}
            else:
                result = {"content": [{"type": "text", "text": args.get("text", "")}],
                          "isError": False}
        else:
            reply({"jsonrpc": "2.0", "id": msg["id"],
                   "error": {"code": -32601, "message": "method not found"}})
            continue
        reply({"jsonrpc": "2.0", "id": msg["id"], "result": result})
except KeyboardInterrupt:
    pass
'''


class _ChunkedReader:
    def __init__(self, chunks):
        self._chunks = list(chunks)

    def read1(self, size=-1):
        return self._chunks.pop(0) if self._chunks else b""


@pytest.fixture
def fake_server(tmp_path):
    script = tmp_path / "fake_server.py"
    script.write_text(FAKE_SERVER)
    log = tmp_path / "received.jsonl"
    return script, log


def _command(script, log, mode="ok"):
    return f"{sys.executable} {script} {log} {mode}"


def _received(log):
    return [json.loads(line) for line in log.read_text().splitlines() if line.strip()]


@pytest.fixture
def started(fake_server):
    script, log = fake_server
    server = Server("fake", _command(script, log))
    server.start(timeout=20)
    yield server, log
    server.close()


def test_transport_send_appends_newline():
    writer = io.BytesIO()
    transport = StdioTransport(io.BytesIO(), writer)
    transport.send(b'{"x":1}')
    assert writer.getvalue() == b'{"x":1}\n'


def test_transport_receive_consecutive_values():
    reader = io.BytesIO(b'{"a":1}{"b":2}\n  \n[1, 2]\n')
    transport = StdioTransport(reader, io.BytesIO())
    assert json.loads(transport.receive()) == {"a": 1}
    assert json.loads(transport.receive()) == {"b": 2}
    assert json.loads(transport.receive()) == [1, 2]
    with pytest.raises(EOFError):
        transport.receive()


def test_transport_receive_joins_chunks_and_split_utf8():
    reader = _ChunkedReader([b'{"text": "caf\xc3', b'\xa9"', b"}\n"])
    transport = StdioTransport(reader, io.BytesIO())
    assert json.loads(transport.receive()) == {"text": "café"}


def test_transport_malformed_line_raises_then_recovers():
    reader = io.BytesIO(b'{"a": }\n{"ok": true}\n')
    transport = StdioTransport(reader, io.BytesIO())
    with pytest.raises(ValueError):
        transport.receive()
    assert json.loads(transport.receive()) == {"ok": True}


def test_transport_truncated_input_at_eof():
    transport = StdioTransport(io.BytesIO(b'{"a": 1'), io.BytesIO())
    with pytest.raises(ValueError):
        transport.receive()


def test_transport_close_closes_both_streams():
    reader, writer = io.BytesIO(), io.BytesIO()
    transport = StdioTransport(reader, writer)
    transport.close()
    transport.close()
    assert reader.closed and writer.closed


def test_tools_by_name():
    tools = Tools([Tool("a", "first"), Tool("b", "second"), Tool("a", "dup")])
    assert tools.by_name("a").description == "first"
    assert tools.by_name("missing") is None


def test_tool_result_content_round_trip():
    raw = {"type": "image", "data": "aGk=", "mimeType": "image/png"}
    content = ToolResultContent.from_dict(raw)
    assert content.mime_type == "image/png"
    assert content.text == ""
    assert content.to_dict() == raw


def test_server_rejects_empty_command():
    with pytest.raises(ValueError):
        Server("empty", "   ")


def test_server_call_before_start():
    server = Server("idle", "does-not-matter")
    with pytest.raises(JsonRpcError):
        server.list_tools()


def test_server_missing_executable():
    server = Server("ghost", "definitely-not-a-real-program-xyz")
    with pytest.raises(OSError):
        server.start(timeout=5)


def test_server_handshake_and_list_tools(started):
    server, log = started
    tools = server.list_tools(timeout=20)
    assert [tool.name for tool in tools] == ["echo", "fail"]
    assert tools.by_name("echo").input_schema == {"type": "object"}
    assert server.capabilities == {"tools": {}}

    methods = [msg["method"] for msg in _received(log)]
    assert methods[:3] == ["initialize", "notifications/initialized", "tools/list"]
    init = _received(log)[0]
    assert init["params"]["protocolVersion"] == "2024-11-05"
    assert init["params"]["clientInfo"]["name"] == "smolcode-mcp-client"
    assert "id" not in _received(log)[1]


def test_server_call_tool(started):
    server, _ = started
    content = server.call("echo", {"text": "hello"}, timeout=20)
    assert [c.to_dict() for c in content] == [{"type": "text", "text": "hello"}]


def test_server_call_tool_error(started):
    server, _ = started
    with pytest.raises(ToolCallError, match="boom") as info:
        server.call("fail", {}, timeout=20)
    assert [c.text for c in info.value.content] == ["boom"]


def test_server_unknown_method_maps_to_jsonrpc_error(started):
    server, _ = started
    with pytest.raises(JsonRpcError, match="method not found"):
        server._request("nope", {}, 20, "'nope'")


def test_server_initialize_failure(fake_server):
    script, log = fake_server
    server = Server("bad", _command(script, log, "fail-init"))
    with pytest.raises(JsonRpcError, match="init refused"):
        server.start(timeout=20)


def test_server_closed_rejects_calls(fake_server):
    script, log = fake_server
    with Server("ctx", _command(script, log)) as server:
        server.start(timeout=20)
        assert server.list_tools(timeout=20).by_name("echo") is not None
    with pytest.raises(JsonRpcError):
        server.list_tools(timeout=5)