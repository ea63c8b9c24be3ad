"""Trigger history stores.

History is append-only: every status transition of a trigger is a new
record, so the log doubles as an audit trail.
"""

import json
import logging
from pathlib import Path
from typing import Any

from intentflow.domain.interfaces import TriggerHistoryInterface
from intentflow.domain.models import Priority, Trigger, TriggerStatus

logger = logging.getLogger(__name__)


class InMemoryTriggerHistory(TriggerHistoryInterface):
    """In-memory implementation for testing."""

    def __init__(self) -> None:
        self._records: list[Trigger] = []

    def append(self, trigger: Trigger) -> None:
        self._records.append(trigger)

    def records(self) -> list[Trigger]:
        return list(self._records)


class JsonlTriggerHistory(TriggerHistoryInterface):
    """Trigger records as JSON lines, loaded once at startup."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._records = self._load()

    def _load(self) -> list[Trigger]:
        if not self.path.exists():
            return []
        records: list[Trigger] = []
        with open(self.path, encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    records.append(trigger_from_dict(json.loads(line)))
                except (json.JSONDecodeError, KeyError, ValueError) as e:
                    # A torn final write must not hide the rest of the history
                    logger.warning("Skipping corrupt history line %s:%d: %s", self.path, lineno, e)
        return records

    def append(self, trigger: Trigger) -> None:
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(trigger_to_dict(trigger)) + "\n")
        self._records.append(trigger)

    def records(self) -> list[Trigger]:
        return list(self._records)


def trigger_to_dict(trigger: Trigger) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": trigger.trigger_id,
        "type": trigger.trigger_type,
        "priority": trigger.priority.value,
        "description": trigger.description,
        "action": trigger.action,
        "condition": trigger.condition,
        "targets": list(trigger.targets),
        "status": trigger.status.value,
        "createdAt": trigger.created_at,
    }
    if trigger.completed_at is not None:
        data["completedAt"] = trigger.completed_at
    if trigger.error is not None:
        data["error"] = trigger.error
    return data


def trigger_from_dict(data: dict[str, Any]) -> Trigger:
    return Trigger(
        trigger_id=data["id"],
        trigger_type=data["type"],
        priority=Priority(data["priority"]),
        description=data.get("description", ""),
        action=data["action"],
        condition=data.get("condition", ""),
        status=TriggerStatus(data["status"]),
        created_at=data.get("createdAt", ""),
        targets=tuple(data.get("targets", [])),
        completed_at=data.get("completedAt"),
        error=data.get("error"),
    )
