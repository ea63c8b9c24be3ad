"""
Template-driven intent generation.

Expands a one-line description into a chain intent of echo calls and drops
it into the queue, where the queue runner picks it up.
"""

import json
import logging
import re
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from intentflow.application.phase_event_emitter import utc_now
from intentflow.domain.exceptions import ConfigError
from intentflow.domain.intent import parse_intent
from intentflow.domain.models import ServerSpec
from intentflow.files import atomic_write_text
from intentflow.schemas import validate_intent

logger = logging.getLogger(__name__)

STEP_TEMPLATES = (
    "Analyze {description} opportunities and integration potential",
    "Research current {description} trends, alternatives and pain points",
    "Design features for {description}: automated workflows, recommendations, personalization",
    "Define the technical architecture for {description}: stack, infrastructure, data stores",
    "Create data models and API specifications for {description}",
    "Develop user experience flows for {description}",
    "Plan security, authentication and data protection for {description}",
    "Plan deployment, scalability and monitoring for {description}",
)

_SAFE_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


def build_intent(
    description: str,
    name: str,
    steps: int = 8,
    server: ServerSpec | None = None,
) -> dict[str, Any]:
    """
    Build the JSON document of a generated chain intent.

    Raises:
        ConfigError: On an unsafe name, empty description or invalid step count
    """
    if not _SAFE_NAME.match(name):
        raise ConfigError(f"Intent name '{name}' must be letters, digits, '.', '_' or '-'")
    if not description.strip():
        raise ConfigError("Intent description must not be empty")
    if steps < 1:
        raise ConfigError("Intent must have at least one step")

    server = server or ServerSpec()
    document = {
        "name": name,
        "description": description,
        "topology": "chain",
        "server": {"name": server.name, "command": server.command, "args": list(server.args)},
        "calls": [
            {"tool": "echo", "params": {"message": template.format(description=description)}}
            for template in STEP_TEMPLATES[: min(steps, len(STEP_TEMPLATES))]
        ],
    }
    validate_intent(document)
    parse_intent(document)
    return document


class IntentGenerator:
    """Writes generated intents into the queue directory."""

    def __init__(
        self,
        queue_dir: Path,
        server: ServerSpec | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._queue_dir = Path(queue_dir)
        self._server = server
        self._clock = clock

    def generate(self, description: str, name: str, steps: int = 8) -> Path:
        """Queue a new intent; never overwrites a pending one."""
        document = build_intent(description, name, steps, self._server)
        path = self._free_path(name)
        atomic_write_text(path, json.dumps(document, indent=2) + "\n")
        logger.info("Intent saved to %s (%d steps)", path, len(document["calls"]))
        return path

    def enqueue_daily(self, prefix: str, description: str, steps: int = 3) -> Path | None:
        """
        Queue `<prefix>-<YYYYMMDD>` unless today's intent was already queued,
        is being processed, or was archived.
        """
        name = f"{prefix}-{self._clock():%Y%m%d}"
        filename = f"intent.{name}.json"
        seen = [
            self._queue_dir / filename,
            self._queue_dir / "processing" / filename,
        ]
        archive = self._queue_dir / "archive"
        if any(p.exists() for p in seen) or (archive.is_dir() and any(archive.glob(f"{filename}*"))):
            logger.debug("Daily intent %s already queued today", name)
            return None
        return self.generate(description, name, steps)

    def _free_path(self, name: str) -> Path:
        self._queue_dir.mkdir(parents=True, exist_ok=True)
        path = self._queue_dir / f"intent.{name}.json"
        n = 1
        while path.exists():
            path = self._queue_dir / f"intent.{name}-{n}.json"
            n += 1
        return path
