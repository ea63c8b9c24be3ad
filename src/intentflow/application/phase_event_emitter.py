"""Phase timeline emission service."""

import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from intentflow.domain.interfaces import PhaseEventStoreInterface
from intentflow.domain.phase_event import PhaseEvent, PhaseEventType


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PhaseEventEmitter:
    """Emits phase events to an optional store.

    Provides convenience methods for the transitions of one orchestration
    cycle, handling ID generation and timestamps. Every emitted event is also
    kept locally so the cycle can return its own timeline.
    """

    def __init__(
        self,
        event_store: PhaseEventStoreInterface | None,
        workflow_id: str,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = event_store
        self._workflow_id = workflow_id
        self._clock = clock
        self._events: list[PhaseEvent] = []

    @property
    def events(self) -> tuple[PhaseEvent, ...]:
        return tuple(self._events)

    def now(self) -> str:
        return self._clock().isoformat()

    def _emit(
        self,
        event_type: PhaseEventType,
        phase: str | None = None,
        attempt: int | None = None,
        verdict: str | None = None,
        summary: str = "",
        elapsed_ms: int | None = None,
    ) -> PhaseEvent:
        event = PhaseEvent(
            event_id=str(uuid.uuid4()),
            event_type=event_type,
            workflow_id=self._workflow_id,
            phase=phase,
            attempt=attempt,
            verdict=verdict,
            summary=summary[:500],
            created_at=self.now(),
            elapsed_ms=elapsed_ms,
        )
        if self._store is not None:
            self._store.store_event(event)
        self._events.append(event)
        return event

    def pipeline_start(self, sequence: tuple[str, ...]) -> PhaseEvent:
        return self._emit(PhaseEventType.PIPELINE_START, summary=" -> ".join(sequence))

    def phase_start(self, phase: str, attempt: int) -> PhaseEvent:
        """Emit PHASE_START when a phase transitions to running."""
        return self._emit(PhaseEventType.PHASE_START, phase, attempt=attempt)

    def phase_pass(self, phase: str, attempt: int, elapsed_ms: int) -> PhaseEvent:
        """Emit PHASE_PASS when a phase completes."""
        return self._emit(
            PhaseEventType.PHASE_PASS,
            phase,
            attempt=attempt,
            verdict="PASS",
            elapsed_ms=elapsed_ms,
        )

    def phase_fail(
        self, phase: str, attempt: int, error: str, elapsed_ms: int
    ) -> PhaseEvent:
        """Emit PHASE_FAIL for every failed attempt."""
        return self._emit(
            PhaseEventType.PHASE_FAIL,
            phase,
            attempt=attempt,
            verdict="FAIL",
            summary=error,
            elapsed_ms=elapsed_ms,
        )

    def phase_retry(self, phase: str, next_attempt: int) -> PhaseEvent:
        return self._emit(PhaseEventType.PHASE_RETRY, phase, attempt=next_attempt)

    def phase_skip(self, phase: str, reason: str) -> PhaseEvent:
        return self._emit(PhaseEventType.PHASE_SKIP, phase, summary=reason)

    def contingency(self, phase: str, name: str, verdict: str, summary: str = "") -> PhaseEvent:
        """Emit CONTINGENCY with the contingency outcome (PASS or FAIL)."""
        return self._emit(
            PhaseEventType.CONTINGENCY,
            phase,
            verdict=verdict,
            summary=f"{name}: {summary}" if summary else name,
        )

    def budget_warning(self, phase: str, elapsed_ms: int, limit_ms: int) -> PhaseEvent:
        return self._emit(
            PhaseEventType.BUDGET_WARNING,
            phase,
            summary=f"ran {elapsed_ms}ms, maxExecutionTime is {limit_ms}ms",
            elapsed_ms=elapsed_ms,
        )

    def pipeline_abort(self, phase: str, error: str) -> PhaseEvent:
        return self._emit(PhaseEventType.PIPELINE_ABORT, phase, verdict="FAIL", summary=error)

    def pipeline_end(self, status: str, elapsed_ms: int) -> PhaseEvent:
        return self._emit(PhaseEventType.PIPELINE_END, summary=status, elapsed_ms=elapsed_ms)
