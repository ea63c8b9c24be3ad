"""
Tool manifests: what each intent's server offers.

Each server's tools/list answer is written to
``<out_dir>/<server name>/tools.json`` with the server description and an
export timestamp.
"""

import logging
import re
from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path
from typing import Any

from intentflow.application.phase_event_emitter import utc_now
from intentflow.domain.exceptions import ConfigError, ServerUnavailable
from intentflow.domain.intent import load_intent
from intentflow.domain.interfaces import ToolGatewayInterface
from intentflow.domain.models import ServerSpec, ToolInfo
from intentflow.files import atomic_write_json

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def tool_manifest(server: ServerSpec, tools: Iterable[ToolInfo], now: datetime) -> dict[str, Any]:
    entries = []
    for tool in tools:
        entry: dict[str, Any] = {"name": tool.name, "description": tool.description}
        if tool.input_schema is not None:
            entry["inputSchema"] = tool.input_schema
        entries.append(entry)
    return {
        "server": {"name": server.name, "command": server.command, "args": list(server.args)},
        "tools": entries,
        "timestampUtc": now.isoformat(),
    }


def manifest_dir_name(server_name: str) -> str:
    """Server name with anything outside [A-Za-z0-9_.-] replaced by '_'."""
    name = _UNSAFE_CHARS.sub("_", server_name)
    return "_" if name.strip(".") == "" else name


class ToolExporter:
    """Writes tool manifests for servers and for the intents that name them."""

    def __init__(
        self,
        gateway: ToolGatewayInterface,
        out_dir: Path,
        clock: Callable[[], datetime] = utc_now,
        cwd: Path | None = None,
    ):
        """
        Args:
            gateway: Answers tools/list
            out_dir: Root directory for manifests
            clock: Source of manifest timestamps
            cwd: Directory substituted for ${workspaceFolder} in intents
        """
        self._gateway = gateway
        self._out_dir = Path(out_dir)
        self._clock = clock
        self._cwd = cwd

    def export(self, server: ServerSpec) -> Path:
        """
        List a server's tools and write its manifest.

        Raises:
            ServerUnavailable: If the server cannot answer tools/list
        """
        tools = self._gateway.list_tools(server)
        path = self._out_dir / manifest_dir_name(server.name) / "tools.json"
        atomic_write_json(path, tool_manifest(server, tools, self._clock()))
        logger.info("Exported %d tool(s) for %s -> %s", len(tools), server.name, path)
        return path

    def export_intent(self, intent_path: Path) -> Path:
        """
        Export the manifest of the server an intent file runs against.

        Raises:
            ConfigError: If the intent file cannot be loaded
            ServerUnavailable: If the server cannot answer tools/list
        """
        return self.export(load_intent(intent_path, cwd=self._cwd).server)

    def export_intents(self, intent_paths: Iterable[Path]) -> tuple[list[Path], dict[str, str]]:
        """
        Export one manifest per distinct server across many intent files.

        A file that fails is recorded and the rest are still exported.

        Returns:
            (manifest paths written, intent file name -> error)
        """
        written: list[Path] = []
        failures: dict[str, str] = {}
        done: dict[ServerSpec, Path] = {}
        for intent_path in sorted(intent_paths):
            try:
                server = load_intent(intent_path, cwd=self._cwd).server
                if server not in done:
                    done[server] = self.export(server)
                    written.append(done[server])
            except (ConfigError, ServerUnavailable) as e:
                logger.warning("Export failed for %s: %s", intent_path.name, e)
                failures[intent_path.name] = str(e)
        return written, failures
