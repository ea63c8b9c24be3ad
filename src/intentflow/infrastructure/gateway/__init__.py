"""
Tool gateway adapters.
"""

from intentflow.infrastructure.gateway.mock import EchoToolGateway, MockToolGateway
from intentflow.infrastructure.gateway.process import run_process
from intentflow.infrastructure.gateway.tools import (
    ProcessToolGateway,
    parse_tool_response,
    parse_tools_list,
)

__all__ = [
    "EchoToolGateway",
    "MockToolGateway",
    "ProcessToolGateway",
    "parse_tool_response",
    "parse_tools_list",
    "run_process",
]
