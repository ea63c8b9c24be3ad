"""
Intent parsing.

Turns the JSON shape of an intent file into an immutable Intent. Every
structural problem is reported as ConfigError; budget ceilings are checked
later by the executor, which knows its own limits.
"""

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from intentflow.domain.exceptions import ConfigError
from intentflow.domain.models import (
    Budgets,
    Intent,
    ServerSpec,
    TieBreak,
    ToolCall,
    Topology,
)

WORKSPACE_FOLDER = "${workspaceFolder}"

_BUDGET_KEYS = {
    "maxSteps": "max_steps",
    "branchFactor": "branch_factor",
    "depth": "depth",
    "maxIterations": "max_iterations",
}


def load_intent(path: Path, cwd: Path | None = None) -> Intent:
    """
    Read and parse an intent file.

    Args:
        path: JSON intent file
        cwd: Directory substituted for ${workspaceFolder} (default: process cwd)

    Raises:
        ConfigError: If the file is unreadable, not JSON, or not a valid intent
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigError(f"Intent file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e
    return parse_intent(data, default_name=Path(path).name.split(".")[0], cwd=cwd)


def parse_intent(
    data: Any,
    default_name: str = "intent",
    cwd: Path | None = None,
    inherited_server: ServerSpec | None = None,
) -> Intent:
    """
    Build an Intent from its JSON shape.

    A single ``call`` object is accepted as shorthand for ``calls: [call]``.
    Children of an orchestrator inherit the parent's server unless they
    declare their own.

    Raises:
        ConfigError: On any structural problem
    """
    if not isinstance(data, Mapping):
        raise ConfigError("Intent must be a JSON object")

    name = data.get("name", default_name)
    if not isinstance(name, str) or not name:
        raise ConfigError("Intent 'name' must be a non-empty string")

    topology = _enum(Topology, data.get("topology", Topology.CHAIN.value), "topology")
    tie_break = _enum(TieBreak, data.get("tieBreak", TieBreak.LOWEST_ID.value), "tieBreak")

    if "server" in data:
        server = parse_server(data["server"], cwd)
    else:
        server = inherited_server or ServerSpec()

    calls = _parse_calls(data, name)
    judge = _parse_call(data["judge"], f"{name}.judge") if data.get("judge") else None

    raw_children = data.get("children", [])
    if not isinstance(raw_children, list):
        raise ConfigError(f"{name}: 'children' must be a list")
    children = tuple(
        parse_intent(child, f"{name}.child{i}", cwd, inherited_server=server)
        for i, child in enumerate(raw_children)
    )

    if topology == Topology.ORCHESTRATOR:
        if not children:
            raise ConfigError(f"{name}: orchestrator intent needs 'children'")
    elif not calls:
        raise ConfigError(f"{name}: intent needs 'call' or 'calls'")

    out = data.get("out")
    if out is not None and not isinstance(out, str):
        raise ConfigError(f"{name}: 'out' must be a string path")

    list_tools = data.get("listTools", False)
    if not isinstance(list_tools, bool):
        raise ConfigError(f"{name}: 'listTools' must be a boolean")

    return Intent(
        name=name,
        topology=topology,
        server=server,
        calls=calls,
        budgets=parse_budgets(data.get("budgets", {}), name),
        judge=judge,
        children=children,
        tie_break=tie_break,
        out=out,
        list_tools=list_tools,
    )


def parse_server(data: Any, cwd: Path | None = None) -> ServerSpec:
    if not isinstance(data, Mapping):
        raise ConfigError("'server' must be an object")
    defaults = ServerSpec()
    name = data.get("name", defaults.name)
    command = data.get("command", defaults.command)
    args = data.get("args", list(defaults.args))
    if not isinstance(command, str) or not command:
        raise ConfigError("server 'command' must be a non-empty string")
    if not isinstance(args, list) or not all(isinstance(a, str) for a in args):
        raise ConfigError("server 'args' must be a list of strings")
    return ServerSpec(
        name=str(name),
        command=command,
        args=tuple(expand_workspace(a, cwd) for a in args),
    )


def parse_budgets(data: Any, name: str = "intent") -> Budgets:
    if not isinstance(data, Mapping):
        raise ConfigError(f"{name}: 'budgets' must be an object")
    values: dict[str, Any] = {}
    for key, attr in _BUDGET_KEYS.items():
        if key in data:
            value = data[key]
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigError(f"{name}: budget '{key}' must be a positive integer")
            values[attr] = value
    if "scoreThreshold" in data:
        tau = data["scoreThreshold"]
        if isinstance(tau, bool) or not isinstance(tau, (int, float)) or not 0 <= tau <= 1:
            raise ConfigError(f"{name}: budget 'scoreThreshold' must be within [0, 1]")
        values["score_threshold"] = float(tau)
    return Budgets(**values)


def expand_workspace(value: str, cwd: Path | None = None) -> str:
    """Replace ${workspaceFolder} with the working directory."""
    if WORKSPACE_FOLDER not in value:
        return value
    root = str(cwd) if cwd is not None else os.getcwd()
    return value.replace(WORKSPACE_FOLDER, root)


def _parse_calls(data: Mapping[str, Any], name: str) -> tuple[ToolCall, ...]:
    if "calls" in data and "call" in data:
        raise ConfigError(f"{name}: use either 'call' or 'calls', not both")
    if "call" in data:
        return (_parse_call(data["call"], f"{name}.call"),)
    raw = data.get("calls", [])
    if not isinstance(raw, list):
        raise ConfigError(f"{name}: 'calls' must be a list")
    calls = tuple(_parse_call(c, f"{name}.calls[{i}]") for i, c in enumerate(raw))
    ids = [c.node_id for c in calls if c.node_id is not None]
    if len(ids) != len(set(ids)):
        raise ConfigError(f"{name}: duplicate call ids")
    return calls


def _parse_call(data: Any, where: str) -> ToolCall:
    if not isinstance(data, Mapping):
        raise ConfigError(f"{where}: call must be an object")
    tool = data.get("tool")
    if not isinstance(tool, str) or not tool:
        raise ConfigError(f"{where}: missing 'tool'")
    params = data.get("params", {})
    if not isinstance(params, Mapping):
        raise ConfigError(f"{where}: 'params' must be an object")
    node_id = data.get("id")
    if node_id is not None and (not isinstance(node_id, str) or not node_id):
        raise ConfigError(f"{where}: 'id' must be a non-empty string")
    after = data.get("after", [])
    if isinstance(after, str):
        after = [after]
    if not isinstance(after, list) or not all(isinstance(a, str) for a in after):
        raise ConfigError(f"{where}: 'after' must be a list of call ids")
    return ToolCall(
        tool=tool,
        params=dict(params),
        node_id=node_id,
        after=tuple(after),
        merge=bool(data.get("merge", False)),
        evaluate=bool(data.get("evaluate", False)),
    )


def _enum(enum_cls: Any, value: Any, field_name: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError as e:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ConfigError(f"Invalid {field_name} '{value}' (expected one of: {allowed})") from e
