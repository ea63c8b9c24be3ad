"""
Tool gateway backed by stdio tool servers.

Each request spawns the server, performs the JSON-RPC handshake over stdin
(initialize, initialized, then tools/call or tools/list), closes stdin and
blocks until the server exits. The response to the request is parsed from
the newline-delimited JSON on stdout.
"""

import json
import logging
from pathlib import Path
from typing import Any

from intentflow.domain.exceptions import ServerUnavailable
from intentflow.domain.interfaces import ToolGatewayInterface
from intentflow.domain.models import Artifact, ServerSpec, ToolInfo, ToolResponse
from intentflow.infrastructure.gateway.process import run_process

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
_CALL_ID = 2


class ProcessToolGateway(ToolGatewayInterface):
    """One server process per request, with a hard timeout."""

    def __init__(
        self,
        timeout: float = 60.0,
        cwd: Path | None = None,
        client_name: str = "intentflow",
    ):
        """
        Args:
            timeout: Seconds before the server process is killed
            cwd: Working directory for server processes
            client_name: Name reported in the initialize handshake
        """
        self._timeout = timeout
        self._cwd = cwd
        self._client_name = client_name

    def call_tool(
        self, server: ServerSpec, tool: str, params: dict[str, Any]
    ) -> ToolResponse:
        logger.info("Calling %s on %s", tool, server.name)
        stdout = self._exchange(
            server, "tools/call", {"name": tool, "arguments": params}, f"tool '{tool}'"
        )
        return parse_tool_response(stdout, server.name, tool)

    def list_tools(self, server: ServerSpec) -> tuple[ToolInfo, ...]:
        logger.info("Listing tools on %s", server.name)
        stdout = self._exchange(server, "tools/list", {}, "tools/list")
        return parse_tools_list(stdout, server.name)

    def _exchange(
        self, server: ServerSpec, method: str, params: dict[str, Any], what: str
    ) -> str:
        result = run_process(
            [server.command, *server.args],
            timeout=self._timeout,
            input_text=self._build_requests(method, params),
            cwd=self._cwd,
        )
        if result.timed_out:
            raise ServerUnavailable(
                f"{server.name}: {what} timed out after {self._timeout}s",
                stderr=result.stderr,
            )
        if result.exit_code != 0:
            raise ServerUnavailable(
                f"{server.name}: process exited with code {result.exit_code}",
                exit_code=result.exit_code,
                stderr=result.stderr,
            )
        return result.stdout

    def _build_requests(self, method: str, params: dict[str, Any]) -> str:
        messages = [
            {
                "jsonrpc": "2.0",
                "id": 1,
                "method": "initialize",
                "params": {
                    "protocolVersion": PROTOCOL_VERSION,
                    "capabilities": {},
                    "clientInfo": {"name": self._client_name, "version": "1.0"},
                },
            },
            {"jsonrpc": "2.0", "method": "notifications/initialized"},
            {"jsonrpc": "2.0", "id": _CALL_ID, "method": method, "params": params},
        ]
        return "".join(json.dumps(m) + "\n" for m in messages)


def _find_response(stdout: str) -> dict[str, Any] | None:
    for line in stdout.splitlines():
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            message = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(message, dict) and message.get("id") == _CALL_ID:
            return message
    return None


def parse_tool_response(stdout: str, server_name: str, tool: str) -> ToolResponse:
    """
    Extract the tools/call result from a server's stdout.

    Raises:
        ServerUnavailable: If no well-formed response is present or the
            server reported an error
    """
    response = _find_response(stdout)
    if response is None:
        raise ServerUnavailable(f"{server_name}: malformed response to tool '{tool}'")
    if "error" in response:
        error = response["error"]
        detail = error.get("message", error) if isinstance(error, dict) else error
        raise ServerUnavailable(f"{server_name}: tool '{tool}' failed: {detail}")

    result = response.get("result")
    if not isinstance(result, dict):
        raise ServerUnavailable(f"{server_name}: tool '{tool}' returned no result")
    if result.get("isError"):
        raise ServerUnavailable(
            f"{server_name}: tool '{tool}' reported an error: {_content_text(result)}"
        )

    meta = result.get("_meta") or {}
    tokens = meta.get("tokens", 0) if isinstance(meta, dict) else 0
    return ToolResponse(
        text=_content_text(result),
        json=result.get("structuredContent"),
        artifacts=_content_artifacts(result),
        tokens=tokens if isinstance(tokens, int) else 0,
    )


def _content_text(result: dict[str, Any]) -> str | None:
    parts = [
        item.get("text", "")
        for item in result.get("content", [])
        if isinstance(item, dict) and item.get("type") == "text"
    ]
    return "\n".join(parts) if parts else None


def _content_artifacts(result: dict[str, Any]) -> tuple[Artifact, ...]:
    artifacts = []
    for item in result.get("content", []):
        if not isinstance(item, dict) or item.get("type") != "resource":
            continue
        resource = item.get("resource") or {}
        uri = resource.get("uri")
        if not uri:
            continue
        path = uri[len("file://") :] if uri.startswith("file://") else None
        artifacts.append(
            Artifact(
                artifact_type="resource",
                path=path,
                data_ref=None if path else uri,
                meta={"mimeType": resource.get("mimeType")}
                if resource.get("mimeType")
                else {},
            )
        )
    return tuple(artifacts)


def parse_tools_list(stdout: str, server_name: str) -> tuple[ToolInfo, ...]:
    """
    Extract the tools/list result from a server's stdout.

    Raises:
        ServerUnavailable: If no well-formed response is present or the
            server reported an error
    """
    response = _find_response(stdout)
    if response is None:
        raise ServerUnavailable(f"{server_name}: malformed response to tools/list")
    if "error" in response:
        error = response["error"]
        detail = error.get("message", error) if isinstance(error, dict) else error
        raise ServerUnavailable(f"{server_name}: tools/list failed: {detail}")

    result = response.get("result")
    tools = result.get("tools") if isinstance(result, dict) else None
    if not isinstance(tools, list):
        raise ServerUnavailable(f"{server_name}: tools/list returned no tools")
    return tuple(
        ToolInfo(
            name=item["name"],
            description=item.get("description") or "",
            input_schema=item.get("inputSchema") if isinstance(item.get("inputSchema"), dict) else None,
        )
        for item in tools
        if isinstance(item, dict) and isinstance(item.get("name"), str)
    )
