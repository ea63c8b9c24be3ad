"""
Mock tool gateways for testing and dry runs.

MockToolGateway returns predefined responses per tool in sequence;
EchoToolGateway answers every call by echoing its parameters.
"""

import json
from collections.abc import Callable
from typing import Any

from intentflow.domain.exceptions import ServerUnavailable
from intentflow.domain.interfaces import ToolGatewayInterface
from intentflow.domain.models import ServerSpec, ToolInfo, ToolResponse

Responder = Callable[[str, dict[str, Any]], ToolResponse | str]


class MockToolGateway(ToolGatewayInterface):
    """Returns predefined responses for testing."""

    def __init__(
        self,
        responses: dict[str, list[ToolResponse | str | Exception]] | None = None,
        responder: Responder | None = None,
        tools: tuple[ToolInfo, ...] | None = None,
    ):
        """
        Args:
            responses: Tool name -> responses returned in sequence. An
                Exception entry is raised instead of returned.
            responder: Fallback called for tools with no queued response
            tools: Answer to list_tools() (default: one entry per queued tool)
        """
        self._responses = {k: list(v) for k, v in (responses or {}).items()}
        self._responder = responder
        self._tools = tools if tools is not None else tuple(ToolInfo(name) for name in self._responses)
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def call_tool(
        self, server: ServerSpec, tool: str, params: dict[str, Any]
    ) -> ToolResponse:
        self.calls.append((tool, params))
        queue = self._responses.get(tool)
        if queue:
            response = queue.pop(0)
        elif self._responder is not None:
            response = self._responder(tool, params)
        else:
            raise ServerUnavailable(f"{server.name}: no mock response for '{tool}'")

        if isinstance(response, Exception):
            raise response
        if isinstance(response, str):
            return ToolResponse(text=response)
        return response

    def list_tools(self, server: ServerSpec) -> tuple[ToolInfo, ...]:
        return self._tools

    @property
    def call_count(self) -> int:
        """Number of times call_tool() has been called."""
        return len(self.calls)

    @property
    def tools_called(self) -> list[str]:
        return [tool for tool, _ in self.calls]


class EchoToolGateway(ToolGatewayInterface):
    """Echoes the 'message' param (or all params as JSON) back as text."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def call_tool(
        self, server: ServerSpec, tool: str, params: dict[str, Any]
    ) -> ToolResponse:
        self.calls.append((tool, params))
        if "message" in params:
            return ToolResponse(text=f"Echo: {params['message']}")
        return ToolResponse(text=json.dumps(params, sort_keys=True), json=params)

    def list_tools(self, server: ServerSpec) -> tuple[ToolInfo, ...]:
        return (
            ToolInfo(
                "echo",
                "Echoes back the input",
                {"type": "object", "properties": {"message": {"type": "string"}}},
            ),
        )
