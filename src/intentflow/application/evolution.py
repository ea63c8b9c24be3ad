"""
EvolutionTriggerEvaluator: turns a system-state snapshot into bounded
corrective actions.

Rules are evaluated in a fixed order. Each match yields a pending Trigger;
implement() runs the rule's action and records every status transition in
the append-only trigger history. One-shot rules do not re-fire for targets
whose trigger already completed.
"""

import dataclasses
import logging
import time
import uuid
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from intentflow.application.phase_event_emitter import utc_now
from intentflow.domain.interfaces import TriggerHistoryInterface
from intentflow.domain.models import Priority, Trigger, TriggerStatus
from intentflow.domain.system_state import SystemState

logger = logging.getLogger(__name__)

FRESHNESS_WINDOW = timedelta(days=30)
QUALITY_THRESHOLD = 70.0
HEALTH_THRESHOLD = 80.0

# (condition, targets) when the rule matches, None otherwise
Matcher = Callable[[SystemState, datetime], tuple[str, tuple[str, ...]] | None]
ActionHandler = Callable[[Trigger], dict[str, Any] | None]


@dataclass(frozen=True)
class TriggerRule:
    trigger_type: str
    priority: Priority
    description: str
    action: str
    match: Matcher
    one_shot: bool = False


def _stale_content(state: SystemState, now: datetime) -> tuple[str, tuple[str, ...]] | None:
    oldest = state.document_stats.oldest_document
    if oldest is None:
        return None
    if oldest.tzinfo is None:
        oldest = oldest.replace(tzinfo=timezone.utc)
    age = now - oldest
    if age <= FRESHNESS_WINDOW:
        return None
    return (
        f"oldestDocument age {age.days}d > {FRESHNESS_WINDOW.days}d",
        tuple(sorted(state.document_stats.stale_documents)),
    )


def _low_quality(state: SystemState, now: datetime) -> tuple[str, tuple[str, ...]] | None:
    score = state.assessment_results.average_score
    if score >= QUALITY_THRESHOLD:
        return None
    return (
        f"averageScore {score:g} < {QUALITY_THRESHOLD:g}",
        tuple(state.assessment_results.needs_improvement),
    )


def _low_engagement(state: SystemState, now: datetime) -> tuple[str, tuple[str, ...]] | None:
    least = state.usage_patterns.least_accessed
    if not least:
        return None
    return f"{len(least)} least-accessed document(s)", tuple(least)


def _low_health(state: SystemState, now: datetime) -> tuple[str, tuple[str, ...]] | None:
    low = tuple(area for area, score in state.system_health.items() if score < HEALTH_THRESHOLD)
    if not low:
        return None
    return f"health below {HEALTH_THRESHOLD:g}: {', '.join(low)}", low


def _always(state: SystemState, now: datetime) -> tuple[str, tuple[str, ...]] | None:
    return "continuous improvement sampling", ()


DEFAULT_RULES: tuple[TriggerRule, ...] = (
    TriggerRule(
        "content_refresh",
        Priority.HIGH,
        "Update outdated content",
        "review_old_documents",
        _stale_content,
        one_shot=True,
    ),
    TriggerRule(
        "quality_improvement",
        Priority.HIGH,
        "Improve low-scoring documents",
        "enhance_poor_documents",
        _low_quality,
    ),
    TriggerRule(
        "engagement_boost",
        Priority.MEDIUM,
        "Improve engagement for underutilized content",
        "promote_least_accessed",
        _low_engagement,
        one_shot=True,
    ),
    TriggerRule(
        "system_health",
        Priority.MEDIUM,
        "Address system health issues",
        "improve_system_health",
        _low_health,
    ),
    TriggerRule(
        "innovation",
        Priority.LOW,
        "Explore new documentation approaches",
        "experiment_new_formats",
        _always,
    ),
)


class EvolutionTriggerEvaluator:
    """Matches rules against snapshots and implements the resulting triggers."""

    def __init__(
        self,
        history: TriggerHistoryInterface,
        actions: Mapping[str, ActionHandler] | None = None,
        rules: Sequence[TriggerRule] = DEFAULT_RULES,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            history: Append-only trigger history (read for one-shot suppression)
            actions: Action name -> bounded, idempotent implementation
            rules: Rule set, evaluated in order
            clock: Source of "now" for ages and timestamps
        """
        self._history = history
        self._actions = dict(actions or {})
        self._rules = tuple(rules)
        self._clock = clock

    def evaluate(self, state: SystemState) -> list[Trigger]:
        """Match every rule; each match becomes a pending Trigger."""
        now = self._clock()
        completed = {
            t.fingerprint
            for t in self._history.latest().values()
            if t.status == TriggerStatus.COMPLETED
        }
        triggers = []
        for rule in self._rules:
            matched = rule.match(state, now)
            if matched is None:
                continue
            condition, targets = matched
            trigger = Trigger(
                trigger_id=self._new_id(),
                trigger_type=rule.trigger_type,
                priority=rule.priority,
                description=rule.description,
                action=rule.action,
                condition=condition,
                status=TriggerStatus.PENDING,
                created_at=now.isoformat(),
                targets=targets,
            )
            if rule.one_shot and trigger.fingerprint in completed:
                logger.info("Suppressing %s: already completed for %s", rule.trigger_type, targets)
                continue
            self._history.append(trigger)
            triggers.append(trigger)
        logger.info("Evaluation produced %d trigger(s)", len(triggers))
        return triggers

    def implement(self, trigger: Trigger) -> Trigger:
        """Run the trigger's action; returns the completed or failed record."""
        running = dataclasses.replace(trigger, status=TriggerStatus.IN_PROGRESS)
        self._history.append(running)
        logger.info("Implementing: %s", trigger.description)

        action = self._actions.get(trigger.action)
        if action is None:
            final = self._finish(running, TriggerStatus.FAILED, f"No action registered for '{trigger.action}'")
        else:
            try:
                action(running)
            except Exception as e:
                logger.error("Evolution %s failed: %s", trigger.trigger_type, e)
                final = self._finish(running, TriggerStatus.FAILED, str(e))
            else:
                final = self._finish(running, TriggerStatus.COMPLETED)
        self._history.append(final)
        return final

    def run(self, state: SystemState) -> list[Trigger]:
        """evaluate() then implement() every trigger."""
        return [self.implement(t) for t in self.evaluate(state)]

    def statistics(self) -> dict[str, Any]:
        """Success rate and per-type counts over the final state of every trigger."""
        latest = list(self._history.latest().values())
        finished = [t for t in latest if t.status in (TriggerStatus.COMPLETED, TriggerStatus.FAILED)]
        completed = sum(1 for t in finished if t.status == TriggerStatus.COMPLETED)
        by_type: dict[str, int] = {}
        for t in latest:
            by_type[t.trigger_type] = by_type.get(t.trigger_type, 0) + 1
        return {
            "total": len(latest),
            "completed": completed,
            "failed": len(finished) - completed,
            "successRate": round(completed / len(finished), 4) if finished else 0.0,
            "byType": by_type,
        }

    def _finish(self, trigger: Trigger, status: TriggerStatus, error: str | None = None) -> Trigger:
        return dataclasses.replace(
            trigger,
            status=status,
            completed_at=self._clock().isoformat(),
            error=error,
        )

    def _new_id(self) -> str:
        return f"trigger_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
