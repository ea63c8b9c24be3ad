"""Shared pytest fixtures for intentflow tests."""

import os
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

from intentflow.config import Settings, load_settings
from intentflow.domain.intent import parse_intent
from intentflow.domain.models import Intent, ServerSpec, ToolResponse
from intentflow.infrastructure.gateway.mock import EchoToolGateway, MockToolGateway

FIXED_NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def server() -> ServerSpec:
    """A server spec that is never actually spawned."""
    return ServerSpec(name="Test", command="test-server", args=("--stdio",))


@pytest.fixture
def make_intent(server: ServerSpec) -> Callable[..., Intent]:
    """Build an Intent from its JSON shape, defaulting the server."""

    def _make(**data: Any) -> Intent:
        data.setdefault("name", "test-intent")
        data.setdefault(
            "server",
            {"name": server.name, "command": server.command, "args": list(server.args)},
        )
        return parse_intent(data)

    return _make


@pytest.fixture
def echo_gateway() -> EchoToolGateway:
    return EchoToolGateway()


@pytest.fixture
def scoring_gateway() -> Callable[[dict[str, list[float]]], MockToolGateway]:
    """Gateway whose tools answer with JSON {"score": s} in sequence."""

    def _make(scores: dict[str, list[float]]) -> MockToolGateway:
        return MockToolGateway(
            responses={
                tool: [ToolResponse(text=f"{tool}-{i}", json={"score": s}) for i, s in enumerate(values)]
                for tool, values in scores.items()
            }
        )

    return _make


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def workspace(tmp_path: Path) -> Settings:
    """A workspace root with an empty docs tree and default layout."""
    (tmp_path / "docs").mkdir()
    return load_settings(root=tmp_path, environ={})


@pytest.fixture
def write_doc() -> Callable[..., Path]:
    """Write a markdown file and backdate its mtime relative to FIXED_NOW."""

    def _write(docs_dir: Path, relative: str, content: str, age_days: int = 0) -> Path:
        path = docs_dir / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        timestamp = FIXED_NOW.timestamp() - age_days * 86400
        os.utime(path, (timestamp, timestamp))
        return path

    return _write
