"""Settings loading for intentflow.

Precedence, lowest first: built-in defaults, ``intentflow.json`` in the
workspace root (or an explicit file), ``INTENTFLOW_*`` environment variables,
explicit overrides (CLI flags).
"""

from __future__ import annotations

import dataclasses
import json
import os
import shlex
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from intentflow.domain.exceptions import ConfigError

CONFIG_FILENAME = "intentflow.json"
ENV_PREFIX = "INTENTFLOW_"


@dataclass(frozen=True)
class Settings:
    """Resolved configuration. Directories are absolute."""

    root: Path
    queue_dir: Path
    out_dir: Path
    state_dir: Path
    docs_dir: Path
    gateway_timeout: float = 60.0
    launcher_timeout: float | None = None
    launcher_command: tuple[str, ...] = ()
    debounce_seconds: float = 0.2
    poll_interval: float = 0.5
    max_steps_ceiling: int = 256
    branch_factor_ceiling: int = 8
    depth_ceiling: int = 8
    max_iterations_ceiling: int = 32
    retry_attempts: int = 3
    max_execution_time_ms: int = 300_000
    max_action_files: int = 20
    log_file: Path | None = None

    @property
    def processing_dir(self) -> Path:
        return self.queue_dir / "processing"

    @property
    def archive_dir(self) -> Path:
        return self.queue_dir / "archive"

    @property
    def events_dir(self) -> Path:
        return self.state_dir / "events"

    @property
    def reports_dir(self) -> Path:
        return self.state_dir / "reports"

    @property
    def trigger_history_file(self) -> Path:
        return self.state_dir / "triggers" / "history.jsonl"

    @property
    def assessment_file(self) -> Path:
        return self.state_dir / "triggers" / "latest-assessment.json"

    @property
    def usage_file(self) -> Path:
        return self.state_dir / "usage.json"

    @property
    def metrics_file(self) -> Path:
        return self.state_dir / "metrics" / "system-metrics.json"


_DIR_DEFAULTS = {
    "queue_dir": "intents/queue",
    "out_dir": "out",
    "state_dir": "state",
    "docs_dir": "docs",
}


def _to_float(value: Any) -> float:
    return float(value)


def _to_optional_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("expected an integer")
    return int(value)


def _to_command(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        return tuple(shlex.split(value))
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return tuple(value)
    raise ValueError("expected a command string or list of strings")


def _to_path(value: Any) -> Path:
    return Path(value)


def _to_optional_path(value: Any) -> Path | None:
    return Path(value) if value else None


_CONVERTERS: dict[str, Callable[[Any], Any]] = {
    "queue_dir": _to_path,
    "out_dir": _to_path,
    "state_dir": _to_path,
    "docs_dir": _to_path,
    "gateway_timeout": _to_float,
    "launcher_timeout": _to_optional_float,
    "launcher_command": _to_command,
    "debounce_seconds": _to_float,
    "poll_interval": _to_float,
    "max_steps_ceiling": _to_int,
    "branch_factor_ceiling": _to_int,
    "depth_ceiling": _to_int,
    "max_iterations_ceiling": _to_int,
    "retry_attempts": _to_int,
    "max_execution_time_ms": _to_int,
    "max_action_files": _to_int,
    "log_file": _to_optional_path,
}


def _load_file(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Expected an object in {path}, got {type(data).__name__}")
    return data


def _from_env(environ: Mapping[str, str]) -> dict[str, Any]:
    values = {}
    for key in _CONVERTERS:
        env_key = ENV_PREFIX + key.upper()
        if env_key in environ:
            values[key] = environ[env_key]
    return values


def load_settings(
    path: Path | None = None,
    root: Path | None = None,
    environ: Mapping[str, str] | None = None,
    **overrides: Any,
) -> Settings:
    """
    Resolve Settings for a workspace.

    Args:
        path: Explicit settings file (must exist)
        root: Workspace root (default: INTENTFLOW_ROOT or the cwd)
        environ: Environment to read (default: os.environ)
        **overrides: Field values that win over everything else; None is ignored

    Raises:
        ConfigError: If the settings file is missing or invalid, or a value
            cannot be converted
    """
    environ = os.environ if environ is None else environ
    root = Path(root or environ.get(ENV_PREFIX + "ROOT") or Path.cwd()).resolve()

    raw: dict[str, Any] = dict(_DIR_DEFAULTS)
    if path is not None:
        if not Path(path).exists():
            raise ConfigError(f"Settings file not found: {path}")
        raw.update(_load_file(Path(path)))
    elif (root / CONFIG_FILENAME).exists():
        raw.update(_load_file(root / CONFIG_FILENAME))
    raw.update(_from_env(environ))
    raw.update({k: v for k, v in overrides.items() if v is not None})

    unknown = sorted(set(raw) - set(_CONVERTERS))
    if unknown:
        raise ConfigError(f"Unknown setting(s): {', '.join(unknown)}")

    values: dict[str, Any] = {}
    for key, value in raw.items():
        try:
            values[key] = _CONVERTERS[key](value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid value for '{key}': {value!r} ({e})") from e

    for key in (*_DIR_DEFAULTS, "log_file"):
        if values.get(key) is not None and not values[key].is_absolute():
            values[key] = root / values[key]

    return Settings(root=root, **values)


def with_overrides(settings: Settings, **overrides: Any) -> Settings:
    """Copy of settings with the non-None overrides applied."""
    return dataclasses.replace(settings, **{k: v for k, v in overrides.items() if v is not None})
