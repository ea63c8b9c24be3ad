"""Phase event store implementations."""

import json
from pathlib import Path
from typing import Any

from intentflow.domain.interfaces import PhaseEventStoreInterface
from intentflow.domain.phase_event import PhaseEvent, PhaseEventType


class InMemoryPhaseEventStore(PhaseEventStoreInterface):
    """In-memory implementation for testing."""

    def __init__(self) -> None:
        self._events: list[PhaseEvent] = []

    def store_event(self, event: PhaseEvent) -> str:
        self._events.append(event)
        return event.event_id

    def get_events(
        self,
        workflow_id: str,
        event_type: PhaseEventType | None = None,
        phase: str | None = None,
    ) -> list[PhaseEvent]:
        return [
            e
            for e in self._events
            if e.workflow_id == workflow_id
            and (event_type is None or e.event_type == event_type)
            and (phase is None or e.phase == phase)
        ]


class FilesystemPhaseEventStore(PhaseEventStoreInterface):
    """Filesystem implementation storing one JSONL file per orchestration cycle."""

    def __init__(self, events_dir: Path) -> None:
        self.events_dir = Path(events_dir)
        self.events_dir.mkdir(parents=True, exist_ok=True)

    def _get_workflow_file(self, workflow_id: str) -> Path:
        return self.events_dir / f"{workflow_id}.jsonl"

    def store_event(self, event: PhaseEvent) -> str:
        path = self._get_workflow_file(event.workflow_id)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(self._event_to_dict(event)) + "\n")
        return event.event_id

    def get_events(
        self,
        workflow_id: str,
        event_type: PhaseEventType | None = None,
        phase: str | None = None,
    ) -> list[PhaseEvent]:
        path = self._get_workflow_file(workflow_id)
        if not path.exists():
            return []
        events: list[PhaseEvent] = []
        with open(path, encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue
                event = self._dict_to_event(json.loads(line))
                if event_type and event.event_type != event_type:
                    continue
                if phase and event.phase != phase:
                    continue
                events.append(event)
        return events

    def workflow_ids(self) -> list[str]:
        """Ids of every stored cycle, oldest file first."""
        files = sorted(self.events_dir.glob("*.jsonl"), key=lambda p: p.stat().st_mtime)
        return [p.stem for p in files]

    def _event_to_dict(self, event: PhaseEvent) -> dict[str, Any]:
        """Serialize event to dict."""
        return {
            "event_id": event.event_id,
            "event_type": event.event_type.value,
            "workflow_id": event.workflow_id,
            "phase": event.phase,
            "attempt": event.attempt,
            "verdict": event.verdict,
            "summary": event.summary,
            "created_at": event.created_at,
            "elapsed_ms": event.elapsed_ms,
        }

    def _dict_to_event(self, data: dict[str, Any]) -> PhaseEvent:
        """Deserialize dict to event."""
        return PhaseEvent(
            event_id=data["event_id"],
            event_type=PhaseEventType(data["event_type"]),
            workflow_id=data["workflow_id"],
            phase=data.get("phase"),
            attempt=data.get("attempt"),
            verdict=data.get("verdict"),
            summary=data.get("summary", ""),
            created_at=data.get("created_at", ""),
            elapsed_ms=data.get("elapsed_ms"),
        )
