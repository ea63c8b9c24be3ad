"""Tests for trigger history stores."""

import dataclasses

import pytest

from intentflow.domain.models import Priority, Trigger, TriggerStatus
from intentflow.infrastructure.persistence import InMemoryTriggerHistory, JsonlTriggerHistory
from intentflow.infrastructure.persistence.triggers import trigger_from_dict, trigger_to_dict


@pytest.fixture
def trigger() -> Trigger:
    return Trigger(
        trigger_id="trigger_1",
        trigger_type="content_refresh",
        priority=Priority.HIGH,
        description="Update outdated content",
        action="review_old_documents",
        condition="oldestDocument age 45d > 30d",
        status=TriggerStatus.PENDING,
        created_at="2025-06-01T12:00:00+00:00",
        targets=("old.md",),
    )


class TestSerialization:
    def test_round_trip(self, trigger):
        done = dataclasses.replace(
            trigger, status=TriggerStatus.FAILED, completed_at="later", error="boom"
        )
        data = trigger_to_dict(done)
        assert data["completedAt"] == "later"
        assert trigger_from_dict(data) == done

    def test_optional_fields_omitted(self, trigger):
        data = trigger_to_dict(trigger)
        assert "completedAt" not in data
        assert "error" not in data


class TestInMemoryTriggerHistory:
    def test_latest_keeps_last_record_per_id(self, trigger):
        history = InMemoryTriggerHistory()
        history.append(trigger)
        history.append(dataclasses.replace(trigger, status=TriggerStatus.COMPLETED))
        assert len(history.records()) == 2
        assert history.latest()["trigger_1"].status == TriggerStatus.COMPLETED


class TestJsonlTriggerHistory:
    """Tests for JsonlTriggerHistory."""

    def test_persists_across_instances(self, tmp_path, trigger):
        path = tmp_path / "triggers" / "history.jsonl"
        JsonlTriggerHistory(path).append(trigger)
        reopened = JsonlTriggerHistory(path)
        assert reopened.records() == [trigger]

    def test_append_only(self, tmp_path, trigger):
        path = tmp_path / "history.jsonl"
        history = JsonlTriggerHistory(path)
        history.append(trigger)
        history.append(dataclasses.replace(trigger, status=TriggerStatus.IN_PROGRESS))
        assert len(path.read_text().splitlines()) == 2

    def test_corrupt_line_skipped(self, tmp_path, trigger):
        path = tmp_path / "history.jsonl"
        JsonlTriggerHistory(path).append(trigger)
        with open(path, "a", encoding="utf-8") as f:
            f.write('{"id": "torn", "ty\n')
        assert JsonlTriggerHistory(path).records() == [trigger]
