"""
Template placeholder resolution for tool call parameters.

Placeholders are resolved once per step against a structured context
(step id -> output). Supported forms:

    {{last.Text}}              output text of the most recent earlier step
    {{last.Json.a.b}}          field of the most recent earlier step's JSON
    {{Calls[2].Text}}          output text of step 2
    {{Calls[2].Json.field}}    field of step 2's JSON
    {{parent.Text}}            alias bound by the topology (parent, best,
                               candidate, graph node ids)
    {{iteration}}              scalar variable bound by the topology

A placeholder that makes up the whole string yields the typed value; inside
a longer string it is substituted as text. Unresolved, unknown or forward
references raise ConfigError.
"""

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from intentflow.domain.exceptions import ConfigError
from intentflow.domain.models import StepOutput

_PLACEHOLDER = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")
_CALLS_REF = re.compile(r"^Calls\[(\d+)\]\.(Text|Json)(?:\.(.+))?$", re.IGNORECASE)
_ALIAS_REF = re.compile(r"^([A-Za-z_][\w-]*)\.(Text|Json)(?:\.(.+))?$", re.IGNORECASE)
_VARIABLE = re.compile(r"^[A-Za-z_]\w*$")


@dataclass(frozen=True)
class Reference:
    """Parsed placeholder pointing at a step output."""

    expression: str
    step_index: int | None  # Calls[i] form
    alias: str | None  # last / parent / node id form
    kind: str  # "text" or "json"
    path: tuple[str, ...] = ()


@dataclass(frozen=True)
class StepContext:
    """Everything a placeholder may legally see when resolving step `current_id`."""

    current_id: int
    outputs: Mapping[int, StepOutput] = field(default_factory=dict)
    aliases: Mapping[str, int] = field(default_factory=dict)
    variables: Mapping[str, Any] = field(default_factory=dict)


def parse_placeholder(expression: str) -> Reference | str:
    """
    Parse the inside of a {{...}} placeholder.

    Returns:
        A Reference for step lookups, or the variable name for scalars

    Raises:
        ConfigError: If the expression matches no supported form
    """
    match = _CALLS_REF.match(expression)
    if match:
        return Reference(
            expression=expression,
            step_index=int(match.group(1)),
            alias=None,
            kind=match.group(2).lower(),
            path=_split_path(match.group(3)),
        )
    match = _ALIAS_REF.match(expression)
    if match:
        return Reference(
            expression=expression,
            step_index=None,
            alias=match.group(1),
            kind=match.group(2).lower(),
            path=_split_path(match.group(3)),
        )
    if _VARIABLE.match(expression):
        return expression
    raise ConfigError(f"Unsupported template placeholder: {{{{{expression}}}}}")


def iter_placeholders(value: Any) -> list[Reference | str]:
    """Collect every placeholder in a (possibly nested) params value."""
    found: list[Reference | str] = []
    if isinstance(value, str):
        for match in _PLACEHOLDER.finditer(value):
            found.append(parse_placeholder(match.group(1)))
    elif isinstance(value, Mapping):
        for item in value.values():
            found.extend(iter_placeholders(item))
    elif isinstance(value, (list, tuple)):
        for item in value:
            found.extend(iter_placeholders(item))
    return found


def resolve_params(params: Mapping[str, Any], context: StepContext) -> dict[str, Any]:
    """Resolve every template in a params mapping."""
    return {key: _resolve(value, context) for key, value in params.items()}


def resolve_value(value: str, context: StepContext) -> Any:
    """Resolve the placeholders inside a single string."""
    whole = _PLACEHOLDER.fullmatch(value.strip())
    if whole:
        return _lookup(parse_placeholder(whole.group(1)), context)

    def substitute(match: re.Match[str]) -> str:
        resolved = _lookup(parse_placeholder(match.group(1)), context)
        return resolved if isinstance(resolved, str) else json.dumps(resolved)

    return _PLACEHOLDER.sub(substitute, value)


def output_text(output: StepOutput) -> str | None:
    """Text view of an output; JSON-only outputs are serialized."""
    if output.text is not None:
        return output.text
    if output.json is not None:
        return json.dumps(output.json)
    return None


def output_json(output: StepOutput) -> Any:
    """JSON view of an output; text that parses as JSON counts."""
    if output.json is not None:
        return output.json
    if output.text:
        try:
            return json.loads(output.text)
        except json.JSONDecodeError:
            return None
    return None


def _resolve(value: Any, context: StepContext) -> Any:
    if isinstance(value, str):
        return resolve_value(value, context)
    if isinstance(value, Mapping):
        return {k: _resolve(v, context) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve(v, context) for v in value]
    return value


def _split_path(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(part for part in raw.split(".") if part)


def _lookup(ref: Reference | str, context: StepContext) -> Any:
    if isinstance(ref, str):
        if ref not in context.variables:
            raise ConfigError(f"Unresolved template variable: {{{{{ref}}}}}")
        return context.variables[ref]

    step_id = _target_step(ref, context)
    output = context.outputs.get(step_id)
    if output is None:
        raise ConfigError(
            f"Unresolved reference {{{{{ref.expression}}}}}: step {step_id} has no output"
        )

    if ref.kind == "text":
        text = output_text(output)
        if text is None:
            raise ConfigError(
                f"Unresolved reference {{{{{ref.expression}}}}}: step {step_id} returned no text"
            )
        return text

    data = output_json(output)
    if data is None:
        raise ConfigError(
            f"Unresolved reference {{{{{ref.expression}}}}}: step {step_id} returned no JSON"
        )
    for part in ref.path:
        if isinstance(data, Mapping) and part in data:
            data = data[part]
        elif isinstance(data, list) and part.isdigit() and int(part) < len(data):
            data = data[int(part)]
        else:
            raise ConfigError(
                f"Unresolved reference {{{{{ref.expression}}}}}: no field '{part}'"
            )
    return data


def _target_step(ref: Reference, context: StepContext) -> int:
    if ref.step_index is not None:
        if ref.step_index >= context.current_id:
            raise ConfigError(
                f"Forward reference {{{{{ref.expression}}}}} in step {context.current_id}"
            )
        return ref.step_index

    alias = ref.alias or ""
    if alias.lower() == "last":
        earlier = [k for k in context.outputs if k < context.current_id]
        if not earlier:
            raise ConfigError(
                f"Unresolved reference {{{{{ref.expression}}}}}: no earlier step"
            )
        return max(earlier)
    if alias not in context.aliases:
        raise ConfigError(f"Unknown reference {{{{{ref.expression}}}}}")
    target = context.aliases[alias]
    if target >= context.current_id:
        raise ConfigError(
            f"Forward reference {{{{{ref.expression}}}}} in step {context.current_id}"
        )
    return target
