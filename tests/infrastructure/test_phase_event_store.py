"""Tests for phase event store implementations."""

from intentflow.domain.phase_event import PhaseEvent, PhaseEventType
from intentflow.infrastructure.persistence import (
    FilesystemPhaseEventStore,
    InMemoryPhaseEventStore,
)


def make_event(
    workflow_id: str = "cycle-1",
    event_type: PhaseEventType = PhaseEventType.PHASE_START,
    phase: str | None = "run_assessment",
    created_at: str = "2025-01-01T00:00:00+00:00",
    **kwargs,
) -> PhaseEvent:
    """Create a test phase event."""
    return PhaseEvent(
        event_id=f"evt-{event_type.value}-{created_at}",
        event_type=event_type,
        workflow_id=workflow_id,
        phase=phase,
        created_at=created_at,
        **kwargs,
    )


class TestInMemoryPhaseEventStore:
    """Tests for InMemoryPhaseEventStore."""

    def test_store_and_retrieve_event(self):
        store = InMemoryPhaseEventStore()
        event = make_event()

        event_id = store.store_event(event)

        assert event_id == event.event_id
        assert store.get_events("cycle-1") == [event]

    def test_filters(self):
        store = InMemoryPhaseEventStore()
        store.store_event(make_event(workflow_id="cycle-1"))
        store.store_event(make_event(workflow_id="cycle-2"))
        store.store_event(make_event(event_type=PhaseEventType.PHASE_PASS, verdict="PASS"))
        store.store_event(make_event(phase="update_metrics"))

        assert len(store.get_events("cycle-1")) == 3
        assert len(store.get_events("cycle-1", event_type=PhaseEventType.PHASE_PASS)) == 1
        assert len(store.get_events("cycle-1", phase="update_metrics")) == 1

    def test_unknown_workflow(self):
        assert InMemoryPhaseEventStore().get_events("missing") == []


class TestFilesystemPhaseEventStore:
    """Tests for FilesystemPhaseEventStore."""

    def test_round_trip_preserves_fields(self, tmp_path):
        store = FilesystemPhaseEventStore(tmp_path / "events")
        event = make_event(
            event_type=PhaseEventType.PHASE_FAIL,
            attempt=2,
            verdict="FAIL",
            summary="PhaseFailure: boom",
            elapsed_ms=15,
        )
        store.store_event(event)

        assert store.get_events("cycle-1") == [event]
        assert (tmp_path / "events" / "cycle-1.jsonl").exists()

    def test_persists_across_instances(self, tmp_path):
        FilesystemPhaseEventStore(tmp_path).store_event(make_event())
        reopened = FilesystemPhaseEventStore(tmp_path)
        assert len(reopened.get_events("cycle-1")) == 1

    def test_append_only_order(self, tmp_path):
        store = FilesystemPhaseEventStore(tmp_path)
        store.store_event(make_event(event_type=PhaseEventType.PIPELINE_START, phase=None))
        store.store_event(make_event(event_type=PhaseEventType.PHASE_START))
        store.store_event(make_event(event_type=PhaseEventType.PIPELINE_END, phase=None))
        types = [e.event_type for e in store.get_events("cycle-1")]
        assert types == [
            PhaseEventType.PIPELINE_START,
            PhaseEventType.PHASE_START,
            PhaseEventType.PIPELINE_END,
        ]

    def test_filters(self, tmp_path):
        store = FilesystemPhaseEventStore(tmp_path)
        store.store_event(make_event())
        store.store_event(make_event(event_type=PhaseEventType.PHASE_PASS, phase="validate_structure"))
        assert len(store.get_events("cycle-1", event_type=PhaseEventType.PHASE_PASS)) == 1
        assert len(store.get_events("cycle-1", phase="run_assessment")) == 1

    def test_workflow_ids(self, tmp_path):
        store = FilesystemPhaseEventStore(tmp_path)
        store.store_event(make_event(workflow_id="cycle-a"))
        store.store_event(make_event(workflow_id="cycle-b"))
        assert set(store.workflow_ids()) == {"cycle-a", "cycle-b"}

    def test_missing_workflow(self, tmp_path):
        assert FilesystemPhaseEventStore(tmp_path).get_events("nope") == []
