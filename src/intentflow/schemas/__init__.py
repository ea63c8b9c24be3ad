"""intentflow JSON Schema definitions and validation utilities.

Schemas:
    - intent.schema.json: Intent files placed in the queue
    - run.schema.json: Run envelopes written by ``intentflow run``

Usage:
    from intentflow.schemas import validate_intent, validate_run_envelope

    with open("intents/queue/demo.json") as f:
        data = json.load(f)
    validate_intent(data)  # Raises ConfigError if invalid
"""

from __future__ import annotations

import json
from functools import cache
from importlib.resources import files
from typing import Any

import jsonschema

from intentflow.domain.exceptions import ConfigError, ValidationFailure


@cache
def _load_schema(name: str) -> dict[str, Any]:
    """Load a JSON schema from the schemas package.

    Args:
        name: Schema filename (e.g., 'run.schema.json')

    Returns:
        Parsed JSON schema as a dictionary
    """
    schema_text = files("intentflow.schemas").joinpath(name).read_text()
    result: dict[str, Any] = json.loads(schema_text)
    return result


def get_intent_schema() -> dict[str, Any]:
    return _load_schema("intent.schema.json")


def get_run_schema() -> dict[str, Any]:
    return _load_schema("run.schema.json")


def schema_errors(data: Any, schema: dict[str, Any]) -> list[str]:
    """Every violation of `schema` in `data`, as 'path: message' strings."""
    validator = jsonschema.Draft7Validator(schema)
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path))
    messages = []
    for error in errors:
        location = "/".join(str(p) for p in error.absolute_path) or "<root>"
        messages.append(f"{location}: {error.message}")
    return messages


def validate_intent(data: Any) -> None:
    """Validate an intent document.

    Raises:
        ConfigError: If the document does not match intent.schema.json
    """
    errors = schema_errors(data, get_intent_schema())
    if errors:
        raise ConfigError("Invalid intent: " + "; ".join(errors))


def validate_run_envelope(data: Any) -> None:
    """Validate a Run envelope.

    Raises:
        ValidationFailure: If a required field is missing or mistyped
    """
    errors = schema_errors(data, get_run_schema())
    if errors:
        raise ValidationFailure(
            f"Run envelope violates contract ({len(errors)} error(s))", errors
        )


__all__ = [
    "get_intent_schema",
    "get_run_schema",
    "schema_errors",
    "validate_intent",
    "validate_run_envelope",
]
