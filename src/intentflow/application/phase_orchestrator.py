"""
PhaseOrchestrator: runs a Plan of named phases.

Phase states: pending -> running -> completed | failed, plus skipped when a
dependency did not complete. A critical failure aborts the pipeline; other
failures are retried up to timing.retry_attempts and then handed to the
phase's contingency. Every transition is appended to the event store and
returned in the PipelineResult.
"""

import logging
import time
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from intentflow.application.phase_event_emitter import PhaseEventEmitter, utc_now
from intentflow.domain.exceptions import (
    BudgetExceeded,
    ConfigError,
    ValidationFailure,
)
from intentflow.domain.interfaces import PhaseEventStoreInterface
from intentflow.domain.models import (
    PhaseResult,
    PhaseStatus,
    PipelineResult,
    PipelineStatus,
    Plan,
    Priority,
)
from intentflow.domain.phase_event import PhaseEvent, PhaseEventType

logger = logging.getLogger(__name__)

# Deterministic failures: retrying cannot change the outcome
NON_RETRYABLE = (ConfigError, BudgetExceeded, ValidationFailure)


@dataclass(frozen=True)
class PhaseContext:
    """What a phase handler sees: its identity and completed phases' outputs."""

    workflow_id: str
    phase: str
    attempt: int
    plan: Plan
    outputs: Mapping[str, dict[str, Any]] = field(default_factory=dict)

    def output_of(self, phase: str) -> dict[str, Any]:
        return dict(self.outputs.get(phase, {}))


PhaseHandler = Callable[[PhaseContext], dict[str, Any] | None]
ContingencyAction = Callable[[str, Exception], dict[str, Any] | None]


def plan_order(plan: Plan) -> list[str]:
    """
    Topological order of the plan's phases, ties broken by declaration order.

    Raises:
        ConfigError: On duplicate phases, unknown dependencies or cycles
    """
    if len(set(plan.sequence)) != len(plan.sequence):
        raise ConfigError("Plan sequence contains duplicate phases")
    position = {p: i for i, p in enumerate(plan.sequence)}
    for phase, deps in plan.dependencies.items():
        if phase not in position:
            raise ConfigError(f"Dependencies declared for unknown phase '{phase}'")
        for dep in deps:
            if dep not in position:
                raise ConfigError(f"Phase '{phase}' depends on unknown phase '{dep}'")

    order: list[str] = []
    done: set[str] = set()
    while len(order) < len(plan.sequence):
        ready = [p for p in plan.sequence if p not in done and all(d in done for d in plan.requires(p))]
        if not ready:
            remaining = [p for p in plan.sequence if p not in done]
            raise ConfigError(f"Plan dependencies form a cycle among: {', '.join(remaining)}")
        order.append(ready[0])
        done.add(ready[0])
    return order


class PhaseOrchestrator:
    """
    Executes Plans phase by phase.

    Retry and contingency policy live here and nowhere else.
    """

    def __init__(
        self,
        handlers: Mapping[str, PhaseHandler],
        contingency_actions: Mapping[str, ContingencyAction] | None = None,
        event_store: PhaseEventStoreInterface | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            handlers: Phase name -> handler returning the phase's output dict
            contingency_actions: Contingency name -> best-effort action
            event_store: Append-only timeline store (None keeps the timeline
                on the returned result only)
            clock: Source of event timestamps
        """
        self._handlers = dict(handlers)
        self._contingencies = dict(contingency_actions or {})
        self._store = event_store
        self._clock = clock

    def execute(self, plan: Plan, workflow_id: str | None = None) -> PipelineResult:
        """
        Run every phase of the plan.

        Args:
            plan: The plan for this cycle
            workflow_id: Identifier of the cycle (generated if None)

        Returns:
            PipelineResult with per-phase results and the event timeline

        Raises:
            ConfigError: If the plan is inconsistent or a phase has no handler
        """
        order = plan_order(plan)
        missing = [p for p in order if p not in self._handlers]
        if missing:
            raise ConfigError(f"No handler registered for phase(s): {', '.join(missing)}")

        workflow_id = workflow_id or f"cycle-{uuid.uuid4().hex[:12]}"
        emitter = PhaseEventEmitter(self._store, workflow_id, self._clock)
        started = time.monotonic()
        results: dict[str, PhaseResult] = {p: PhaseResult(p, PhaseStatus.PENDING) for p in plan.sequence}
        outputs: dict[str, dict[str, Any]] = {}
        aborted = False

        emitter.pipeline_start(tuple(order))
        logger.info("Pipeline %s: %s", workflow_id, " -> ".join(order))

        for phase in order:
            blocked = [d for d in plan.requires(phase) if results[d].status != PhaseStatus.COMPLETED]
            if blocked:
                reason = f"dependency not completed: {', '.join(blocked)}"
                emitter.phase_skip(phase, reason)
                logger.warning("Skipping %s (%s)", phase, reason)
                results[phase] = PhaseResult(phase, PhaseStatus.SKIPPED, error=reason)
                continue

            result = self._run_phase(plan, phase, emitter, outputs, workflow_id)
            results[phase] = result
            if result.status == PhaseStatus.COMPLETED:
                outputs[phase] = result.output
            elif plan.priority_of(phase) == Priority.CRITICAL:
                emitter.pipeline_abort(phase, result.error or "failed")
                logger.error("Critical phase %s failed; aborting pipeline", phase)
                aborted = True
                break

        if aborted:
            status = PipelineStatus.ABORTED
        elif all(r.status == PhaseStatus.COMPLETED for r in results.values()):
            status = PipelineStatus.COMPLETED
        else:
            status = PipelineStatus.COMPLETED_WITH_FAILURES

        duration_ms = int((time.monotonic() - started) * 1000)
        emitter.pipeline_end(status.value, duration_ms)
        logger.info("Pipeline %s finished: %s", workflow_id, status.value)
        return PipelineResult(
            workflow_id=workflow_id,
            status=status,
            phases=results,
            events=emitter.events,
            duration_ms=duration_ms,
        )

    def _run_phase(
        self,
        plan: Plan,
        phase: str,
        emitter: PhaseEventEmitter,
        outputs: dict[str, dict[str, Any]],
        workflow_id: str,
    ) -> PhaseResult:
        handler = self._handlers[phase]
        critical = plan.priority_of(phase) == Priority.CRITICAL
        max_attempts = 1 if critical else 1 + plan.timing.retry_attempts
        limit_ms = plan.timing.max_execution_time_ms
        started_at = emitter.now()
        attempt = 0

        while True:
            attempt += 1
            if attempt > 1:
                emitter.phase_retry(phase, attempt)
                logger.info("Retrying %s (attempt %d/%d)", phase, attempt, max_attempts)
            emitter.phase_start(phase, attempt)
            t0 = time.monotonic()
            context = PhaseContext(workflow_id, phase, attempt, plan, dict(outputs))
            try:
                output = handler(context) or {}
            except Exception as e:
                elapsed_ms = int((time.monotonic() - t0) * 1000)
                self._check_time(emitter, phase, elapsed_ms, limit_ms)
                emitter.phase_fail(phase, attempt, f"{type(e).__name__}: {e}", elapsed_ms)
                logger.warning("Phase %s failed (attempt %d): %s", phase, attempt, e)
                if isinstance(e, NON_RETRYABLE) or attempt >= max_attempts:
                    return self._fail_phase(emitter, plan, phase, critical, attempt, started_at, e)
                continue

            elapsed_ms = int((time.monotonic() - t0) * 1000)
            self._check_time(emitter, phase, elapsed_ms, limit_ms)
            emitter.phase_pass(phase, attempt, elapsed_ms)
            logger.info("Phase %s completed in %dms", phase, elapsed_ms)
            return PhaseResult(
                phase=phase,
                status=PhaseStatus.COMPLETED,
                attempts=attempt,
                started_at=started_at,
                finished_at=emitter.now(),
                output=dict(output),
            )

    def _fail_phase(
        self,
        emitter: PhaseEventEmitter,
        plan: Plan,
        phase: str,
        critical: bool,
        attempt: int,
        started_at: str,
        error: Exception,
    ) -> PhaseResult:
        contingency = None if critical else plan.contingencies.get(phase)
        if contingency:
            self._run_contingency(emitter, phase, contingency, error)
        return PhaseResult(
            phase=phase,
            status=PhaseStatus.FAILED,
            attempts=attempt,
            started_at=started_at,
            finished_at=emitter.now(),
            error=f"{type(error).__name__}: {error}",
            contingency=contingency,
        )

    def _run_contingency(
        self, emitter: PhaseEventEmitter, phase: str, name: str, error: Exception
    ) -> None:
        action = self._contingencies.get(name)
        if action is None:
            emitter.contingency(phase, name, "FAIL", "no action registered")
            logger.warning("No contingency action registered for %s", name)
            return
        logger.info("Running contingency %s for %s", name, phase)
        try:
            outcome = action(phase, error) or {}
        except Exception as e:
            # Best-effort: a failing contingency never fails the pipeline
            emitter.contingency(phase, name, "FAIL", str(e))
            logger.warning("Contingency %s failed: %s", name, e)
            return
        emitter.contingency(phase, name, "PASS", str(outcome.get("summary", "")))

    def _check_time(
        self, emitter: PhaseEventEmitter, phase: str, elapsed_ms: int, limit_ms: int
    ) -> None:
        if elapsed_ms > limit_ms:
            emitter.budget_warning(phase, elapsed_ms, limit_ms)
            logger.warning("Phase %s exceeded maxExecutionTime (%dms > %dms)", phase, elapsed_ms, limit_ms)


def timeline_metrics(events: tuple[PhaseEvent, ...] | list[PhaseEvent]) -> dict[str, Any]:
    """Success rate and durations derived purely from a cycle's events."""
    started = {e.phase for e in events if e.event_type == PhaseEventType.PHASE_START}
    passed = {e.phase for e in events if e.event_type == PhaseEventType.PHASE_PASS}
    durations: dict[str, int] = {}
    for e in events:
        if e.event_type in (PhaseEventType.PHASE_PASS, PhaseEventType.PHASE_FAIL) and e.phase:
            durations[e.phase] = durations.get(e.phase, 0) + (e.elapsed_ms or 0)
    end = next((e for e in events if e.event_type == PhaseEventType.PIPELINE_END), None)

    def count(event_type: PhaseEventType) -> int:
        return sum(1 for e in events if e.event_type == event_type)

    return {
        "phasesAttempted": len(started),
        "phasesCompleted": len(passed),
        "successRate": round(len(passed) / len(started), 4) if started else 0.0,
        "retries": count(PhaseEventType.PHASE_RETRY),
        "contingencies": count(PhaseEventType.CONTINGENCY),
        "budgetWarnings": count(PhaseEventType.BUDGET_WARNING),
        "skipped": count(PhaseEventType.PHASE_SKIP),
        "aborted": count(PhaseEventType.PIPELINE_ABORT) > 0,
        "phaseDurationsMs": durations,
        "totalDurationMs": end.elapsed_ms if end and end.elapsed_ms is not None else sum(durations.values()),
    }
