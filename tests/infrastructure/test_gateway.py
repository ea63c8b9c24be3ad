"""Tests for the process-backed tool gateway."""

import json
import sys

import pytest

from intentflow.domain.exceptions import ServerUnavailable
from intentflow.domain.models import ServerSpec, ToolInfo, ToolResponse
from intentflow.infrastructure.gateway.mock import EchoToolGateway, MockToolGateway
from intentflow.infrastructure.gateway.process import run_process
from intentflow.infrastructure.gateway.tools import (
    ProcessToolGateway,
    parse_tool_response,
    parse_tools_list,
)

# Minimal stdio tool server: answers initialize, tools/list and tools/call, exits on EOF
ECHO_SERVER = """
import json, sys
for line in sys.stdin:
    message = json.loads(line)
    if message.get("id") == 1:
        print(json.dumps({"jsonrpc": "2.0", "id": 1, "result": {}}))
    elif message.get("method") == "tools/list":
        print(json.dumps({
            "jsonrpc": "2.0",
            "id": message["id"],
            "result": {"tools": [
                {"name": "echo", "description": "Echoes back the input",
                 "inputSchema": {"type": "object"}},
                {"name": "add"},
            ]},
        }))
    elif message.get("id") == 2:
        params = message["params"]
        text = "Echo: " + str(params["arguments"].get("message", ""))
        print(json.dumps({
            "jsonrpc": "2.0",
            "id": 2,
            "result": {
                "content": [{"type": "text", "text": text}],
                "structuredContent": {"tool": params["name"]},
            },
        }))
"""


def _server(script: str) -> ServerSpec:
    return ServerSpec(name="Py", command=sys.executable, args=("-c", script))


def _response(result=None, error=None) -> str:
    message = {"jsonrpc": "2.0", "id": 2}
    if error is not None:
        message["error"] = error
    else:
        message["result"] = result
    return "server starting\n" + json.dumps({"jsonrpc": "2.0", "id": 1, "result": {}}) + "\n" + json.dumps(message)


class TestRunProcess:
    """Tests for run_process()."""

    def test_captures_output(self):
        result = run_process([sys.executable, "-c", "import sys; print('out'); print('err', file=sys.stderr)"])
        assert result.ok
        assert result.stdout.strip() == "out"
        assert result.stderr.strip() == "err"

    def test_stdin(self):
        result = run_process([sys.executable, "-c", "import sys; print(sys.stdin.read().upper())"], input_text="hi")
        assert result.stdout.strip() == "HI"

    def test_timeout(self):
        result = run_process([sys.executable, "-c", "import time; time.sleep(5)"], timeout=0.3)
        assert result.timed_out
        assert result.exit_code is None
        assert not result.ok
        assert "Timed out" in result.stderr

    def test_spawn_failure(self):
        result = run_process(["/nonexistent/intentflow-test-binary"])
        assert result.exit_code is None
        assert not result.timed_out
        assert "Could not start" in result.stderr


class TestParseToolResponse:
    """Tests for parse_tool_response()."""

    def test_text_and_structured_content(self):
        response = parse_tool_response(
            _response(
                {
                    "content": [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}],
                    "structuredContent": {"x": 1},
                    "_meta": {"tokens": 7},
                }
            ),
            "S",
            "tool",
        )
        assert response == ToolResponse(text="a\nb", json={"x": 1}, tokens=7)

    def test_resource_artifacts(self):
        response = parse_tool_response(
            _response(
                {
                    "content": [
                        {"type": "resource", "resource": {"uri": "file:///tmp/out.png", "mimeType": "image/png"}},
                        {"type": "resource", "resource": {"uri": "mem://blob/1"}},
                    ]
                }
            ),
            "S",
            "tool",
        )
        assert response.text is None
        assert response.artifacts[0].path == "/tmp/out.png"
        assert response.artifacts[0].meta == {"mimeType": "image/png"}
        assert response.artifacts[1].data_ref == "mem://blob/1"

    def test_missing_response(self):
        with pytest.raises(ServerUnavailable, match="malformed response"):
            parse_tool_response("not json at all", "S", "tool")

    def test_rpc_error(self):
        with pytest.raises(ServerUnavailable, match="failed: Unknown tool"):
            parse_tool_response(_response(error={"code": -32602, "message": "Unknown tool"}), "S", "tool")

    def test_tool_error(self):
        with pytest.raises(ServerUnavailable, match="reported an error: bad input"):
            parse_tool_response(
                _response({"isError": True, "content": [{"type": "text", "text": "bad input"}]}),
                "S",
                "tool",
            )


class TestParseToolsList:
    """Tests for parse_tools_list()."""

    def test_tools_with_optional_fields(self):
        tools = parse_tools_list(
            _response(
                {
                    "tools": [
                        {"name": "echo", "description": "Echo", "inputSchema": {"type": "object"}},
                        {"name": "add"},
                        {"description": "nameless"},
                    ]
                }
            ),
            "S",
        )
        assert tools == (
            ToolInfo("echo", "Echo", {"type": "object"}),
            ToolInfo("add"),
        )

    def test_missing_tools(self):
        with pytest.raises(ServerUnavailable, match="returned no tools"):
            parse_tools_list(_response({}), "S")

    def test_rpc_error(self):
        with pytest.raises(ServerUnavailable, match="tools/list failed: Method not found"):
            parse_tools_list(_response(error={"code": -32601, "message": "Method not found"}), "S")

    def test_missing_response(self):
        with pytest.raises(ServerUnavailable, match="malformed response to tools/list"):
            parse_tools_list("", "S")


class TestProcessToolGateway:
    """Tests for ProcessToolGateway against a real child process."""

    def test_call_tool(self):
        response = ProcessToolGateway(timeout=30).call_tool(_server(ECHO_SERVER), "echo", {"message": "hi"})
        assert response.text == "Echo: hi"
        assert response.json == {"tool": "echo"}

    def test_nonzero_exit(self):
        with pytest.raises(ServerUnavailable) as exc_info:
            ProcessToolGateway().call_tool(_server("import sys; sys.exit(3)"), "echo", {})
        assert exc_info.value.exit_code == 3

    def test_timeout(self):
        with pytest.raises(ServerUnavailable, match="timed out"):
            ProcessToolGateway(timeout=0.3).call_tool(_server("import time; time.sleep(5)"), "echo", {})

    def test_list_tools(self):
        tools = ProcessToolGateway(timeout=30).list_tools(_server(ECHO_SERVER))
        assert [t.name for t in tools] == ["echo", "add"]
        assert tools[0].description == "Echoes back the input"
        assert tools[0].input_schema == {"type": "object"}

    def test_list_tools_nonzero_exit(self):
        with pytest.raises(ServerUnavailable, match="exited with code 4"):
            ProcessToolGateway().list_tools(_server("import sys; sys.exit(4)"))


class TestMockGateways:
    """Tests for the in-process gateways."""

    def test_mock_sequence_and_errors(self):
        gateway = MockToolGateway(responses={"a": ["one", RuntimeError("boom")]})
        assert gateway.call_tool(ServerSpec(), "a", {}).text == "one"
        with pytest.raises(RuntimeError):
            gateway.call_tool(ServerSpec(), "a", {})
        with pytest.raises(ServerUnavailable, match="no mock response for 'a'"):
            gateway.call_tool(ServerSpec(), "a", {})
        assert gateway.call_count == 3
        assert gateway.tools_called == ["a", "a", "a"]

    def test_echo(self):
        gateway = EchoToolGateway()
        assert gateway.call_tool(ServerSpec(), "echo", {"message": "x"}).text == "Echo: x"
        response = gateway.call_tool(ServerSpec(), "add", {"b": 2, "a": 1})
        assert response.text == '{"a": 1, "b": 2}'
        assert response.json == {"b": 2, "a": 1}

    def test_listed_tools(self):
        assert MockToolGateway(responses={"a": [], "b": []}).list_tools(ServerSpec()) == (
            ToolInfo("a"),
            ToolInfo("b"),
        )
        assert [t.name for t in EchoToolGateway().list_tools(ServerSpec())] == ["echo"]
