"""
The default evolution pipeline: one orchestration cycle over a workspace.

    [generate_intent] -> validate_structure -> [process_queue] -> run_assessment
        -> trigger_evolution -> generate_reports -> update_metrics

Phases pass results forward through PhaseContext outputs only; the files they
write (assessment, reports, metrics) are for humans and the next cycle.
"""

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from intentflow.application.evolution import EvolutionTriggerEvaluator
from intentflow.application.intent_generator import IntentGenerator
from intentflow.application.phase_event_emitter import utc_now
from intentflow.application.phase_orchestrator import (
    ContingencyAction,
    PhaseContext,
    PhaseHandler,
    PhaseOrchestrator,
    timeline_metrics,
)
from intentflow.application.queue_runner import QueueLayout, QueueRunner
from intentflow.config import Settings
from intentflow.domain.envelope import run_from_dict
from intentflow.domain.exceptions import ConfigError, PhaseFailure, ValidationFailure
from intentflow.domain.interfaces import IntentLauncherInterface
from intentflow.domain.models import (
    PhaseTiming,
    PipelineResult,
    Plan,
    Priority,
    QueueItemStatus,
)
from intentflow.domain.system_state import (
    AssessmentResults,
    SystemState,
    UsagePatterns,
)
from intentflow.files import atomic_write_json, read_json
from intentflow.infrastructure.actions import DocumentActions
from intentflow.infrastructure.documents import document_stats, markdown_files
from intentflow.infrastructure.persistence import (
    FilesystemPhaseEventStore,
    JsonlTriggerHistory,
)
from intentflow.infrastructure.persistence.triggers import trigger_to_dict
from intentflow.schemas import get_intent_schema, schema_errors, validate_run_envelope

logger = logging.getLogger(__name__)

GENERATE_INTENT = "generate_intent"
VALIDATE_STRUCTURE = "validate_structure"
PROCESS_QUEUE = "process_queue"
RUN_ASSESSMENT = "run_assessment"
TRIGGER_EVOLUTION = "trigger_evolution"
GENERATE_REPORTS = "generate_reports"
UPDATE_METRICS = "update_metrics"

CONTINGENCY_PLANS = {
    "mcp_server_failure": "Fallback to core servers, isolate problematic servers",
    "documentation_sync_failure": "Manual documentation review and update",
    "quality_degradation": "Immediate investigation and remediation",
    "orchestration_failure": "Graceful degradation to manual operations",
}

NEEDS_IMPROVEMENT_BELOW = 70.0
HEALTH_WEIGHTS = {
    "documentationCompleteness": 0.3,
    "systemReliability": 0.3,
    "evolutionEffectiveness": 0.2,
    "userEngagement": 0.15,
    "technicalDebt": 0.05,  # Lower is better; inverted when weighted
}
METRICS_HISTORY_LIMIT = 100

_LINK = re.compile(r"\[[^\]]*\]\(([^)\s]+)\)")


@dataclass(frozen=True)
class IntentRequest:
    """A one-line description to expand into a queued intent this cycle."""

    description: str
    name: str = "generated"
    steps: int = 8


def default_plan(
    timing: PhaseTiming | None = None,
    intent: IntentRequest | None = None,
    process_queue: bool = False,
) -> Plan:
    """
    Build the plan for one cycle.

    Args:
        timing: Retry and execution-time policy
        intent: When given, a leading generate_intent phase queues it
        process_queue: Drain the intent queue before assessing its results
    """
    sequence = [VALIDATE_STRUCTURE, RUN_ASSESSMENT, TRIGGER_EVOLUTION, GENERATE_REPORTS, UPDATE_METRICS]
    dependencies: dict[str, tuple[str, ...]] = {
        RUN_ASSESSMENT: (VALIDATE_STRUCTURE,),
        TRIGGER_EVOLUTION: (RUN_ASSESSMENT,),
        GENERATE_REPORTS: (RUN_ASSESSMENT, TRIGGER_EVOLUTION),
        UPDATE_METRICS: (GENERATE_REPORTS,),
    }
    priorities = {
        VALIDATE_STRUCTURE: Priority.CRITICAL,
        RUN_ASSESSMENT: Priority.HIGH,
        TRIGGER_EVOLUTION: Priority.MEDIUM,
        GENERATE_REPORTS: Priority.LOW,
        UPDATE_METRICS: Priority.LOW,
    }
    contingencies = {
        RUN_ASSESSMENT: "quality_degradation",
        TRIGGER_EVOLUTION: "orchestration_failure",
        GENERATE_REPORTS: "documentation_sync_failure",
        UPDATE_METRICS: "documentation_sync_failure",
    }
    if process_queue:
        sequence.insert(1, PROCESS_QUEUE)
        dependencies[PROCESS_QUEUE] = (VALIDATE_STRUCTURE,)
        dependencies[RUN_ASSESSMENT] = (VALIDATE_STRUCTURE, PROCESS_QUEUE)
        priorities[PROCESS_QUEUE] = Priority.HIGH
        contingencies[PROCESS_QUEUE] = "mcp_server_failure"
    if intent is not None:
        sequence.insert(0, GENERATE_INTENT)
        priorities[GENERATE_INTENT] = Priority.HIGH
        contingencies[GENERATE_INTENT] = "orchestration_failure"

    return Plan(
        sequence=tuple(sequence),
        dependencies=dependencies,
        priorities=priorities,
        timing=timing or PhaseTiming(),
        contingencies=contingencies,
    )


# =============================================================================
# DOCUMENT ASSESSMENT
# =============================================================================


def assess_document(content: str) -> dict[str, float]:
    """
    Structural scores in [0, 100] for one markdown document.

    Purely mechanical checks (sections, links, code, placeholders, length);
    the overall score is the mean of the four dimensions.
    """
    lower = content.lower()

    completeness = 0.0
    for section in ("overview", "self-assessment", "evolution-triggers"):
        if section in lower:
            completeness += 20
    if "](" in content and "../" in content:
        completeness += 15
    if "```" in content:
        completeness += 10
    if "*" in content and "note:" in lower:
        completeness += 15

    accuracy = 85.0
    for placeholder in ("todo", "fixme", "xxx", "placeholder", "coming soon"):
        if placeholder in lower:
            accuracy -= 10

    relevance = 75.0
    if "```" in content and "example" in lower:
        relevance += 10
    if "you" in lower or "user" in lower:
        relevance += 5
    if "step" in lower or "guide" in lower:
        relevance += 10

    quality = 70.0
    if "#" in content and "##" in content:
        quality += 10
    words = len(content.split())
    if 100 < words < 2000:
        quality += 10
    elif words <= 100:
        quality -= 10

    scores = {
        "completeness": min(100.0, completeness),
        "accuracy": max(0.0, min(100.0, accuracy)),
        "relevance": min(100.0, relevance),
        "quality": max(0.0, min(100.0, quality)),
    }
    scores["overall"] = round(sum(scores.values()) / 4, 2)
    return scores


def link_integrity(files: list[Path]) -> float:
    """Percentage of relative links that resolve to an existing file."""
    total = broken = 0
    for path in files:
        for target in _LINK.findall(path.read_text(encoding="utf-8", errors="replace")):
            if "://" in target or target.startswith(("#", "mailto:")):
                continue
            total += 1
            if not (path.parent / target.split("#", 1)[0]).exists():
                broken += 1
    return 100.0 if total == 0 else round(100 * (total - broken) / total, 2)


def health_score(metrics: dict[str, float]) -> int:
    score = 0.0
    for name, weight in HEALTH_WEIGHTS.items():
        value = metrics.get(name, 0.0)
        if name == "technicalDebt":
            value = max(0.0, 100 - value)
        score += value * weight
    return round(score)


def gather_system_state(settings: Settings, now: datetime) -> SystemState:
    """
    Snapshot for a standalone evolution run: live document stats plus the
    last assessment and usage export found under the state directory.
    """
    assessment = read_json(settings.assessment_file, default={})
    return SystemState(
        document_stats=document_stats(settings.docs_dir, now),
        usage_patterns=UsagePatterns.model_validate(read_json(settings.usage_file, default={})),
        assessment_results=AssessmentResults.model_validate(assessment),
        system_health=assessment.get("systemHealth", {}),
    )


# =============================================================================
# PIPELINE
# =============================================================================


class EvolutionPipeline:
    """Binds the default plan's phases to one workspace."""

    def __init__(
        self,
        settings: Settings,
        launcher: IntentLauncherInterface | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            settings: Workspace layout and policy
            launcher: Executor launcher for the process_queue phase
            clock: Source of "now" for ages, file names and timestamps
        """
        self._settings = settings
        self._launcher = launcher
        self._clock = clock
        self._events = FilesystemPhaseEventStore(settings.events_dir)
        self._history = JsonlTriggerHistory(settings.trigger_history_file)
        self._generator = IntentGenerator(settings.queue_dir, clock=clock)
        self._intent: IntentRequest | None = None

    @property
    def event_store(self) -> FilesystemPhaseEventStore:
        return self._events

    def plan(self, intent: IntentRequest | None = None, process_queue: bool = False) -> Plan:
        timing = PhaseTiming(
            max_execution_time_ms=self._settings.max_execution_time_ms,
            retry_attempts=self._settings.retry_attempts,
        )
        return default_plan(timing, intent, process_queue)

    def run(
        self,
        intent: IntentRequest | None = None,
        process_queue: bool = False,
        workflow_id: str | None = None,
    ) -> PipelineResult:
        """Run one cycle; phase events land in state/events/<workflow_id>.jsonl."""
        if process_queue and self._launcher is None:
            raise ConfigError("process_queue requires an intent launcher")
        self._intent = intent
        orchestrator = PhaseOrchestrator(
            self.handlers(),
            self.contingency_actions(),
            event_store=self._events,
            clock=self._clock,
        )
        return orchestrator.execute(self.plan(intent, process_queue), workflow_id)

    def handlers(self) -> dict[str, PhaseHandler]:
        return {
            GENERATE_INTENT: self.generate_intent,
            VALIDATE_STRUCTURE: self.validate_structure,
            PROCESS_QUEUE: self.process_queue,
            RUN_ASSESSMENT: self.run_assessment,
            TRIGGER_EVOLUTION: self.trigger_evolution,
            GENERATE_REPORTS: self.generate_reports,
            UPDATE_METRICS: self.update_metrics,
        }

    def contingency_actions(self) -> dict[str, ContingencyAction]:
        return {name: self._contingency(name) for name in CONTINGENCY_PLANS}

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    def generate_intent(self, ctx: PhaseContext) -> dict[str, Any]:
        if self._intent is None:
            raise ConfigError("No intent description configured")
        path = self._generator.generate(self._intent.description, self._intent.name, self._intent.steps)
        return {"intentPath": str(path)}

    def validate_structure(self, ctx: PhaseContext) -> dict[str, Any]:
        s = self._settings
        if not s.docs_dir.is_dir():
            raise ConfigError(f"Documentation directory not found: {s.docs_dir}")
        for d in (s.queue_dir, s.out_dir, s.state_dir, s.reports_dir):
            d.mkdir(parents=True, exist_ok=True)

        queued = sorted(p for p in s.queue_dir.glob("*.json") if p.is_file())
        invalid: dict[str, list[str]] = {}
        schema = get_intent_schema()
        for path in queued:
            try:
                errors = schema_errors(json.loads(path.read_text(encoding="utf-8")), schema)
            except json.JSONDecodeError as e:
                errors = [f"invalid JSON: {e}"]
            if errors:
                invalid[path.name] = errors
                logger.warning("Queued intent %s is invalid: %s", path.name, errors[0])

        return {
            "documents": len(markdown_files(s.docs_dir)),
            "queuedIntents": len(queued),
            "invalidIntents": invalid,
        }

    def process_queue(self, ctx: PhaseContext) -> dict[str, Any]:
        if self._launcher is None:
            raise ConfigError("process_queue requires an intent launcher")
        runner = QueueRunner(
            QueueLayout(self._settings.queue_dir, self._settings.out_dir),
            self._launcher,
            debounce_delay=self._settings.debounce_seconds,
            clock=self._clock,
        )
        results = runner.run_once()
        failed = [r.name for r in results if r.status != QueueItemStatus.ARCHIVED_OK]
        if results and len(failed) == len(results):
            raise PhaseFailure(ctx.phase, f"all {len(results)} queued intent(s) failed")
        return {"processed": len(results), "failed": failed}

    def run_assessment(self, ctx: PhaseContext) -> dict[str, Any]:
        s = self._settings
        now = self._clock()
        files = markdown_files(s.docs_dir)

        documents = []
        for path in files:
            scores = assess_document(path.read_text(encoding="utf-8", errors="replace"))
            documents.append({"file": path.relative_to(s.docs_dir).as_posix(), "scores": scores})
        overall = [d["scores"]["overall"] for d in documents]
        assessment = AssessmentResults(
            average_score=round(sum(overall) / len(overall), 2) if overall else 75.0,
            needs_improvement=[
                d["file"] for d in documents if d["scores"]["overall"] < NEEDS_IMPROVEMENT_BELOW
            ],
        )

        runs = self._assess_runs()
        stats = document_stats(s.docs_dir, now)
        usage = UsagePatterns.model_validate(read_json(s.usage_file, default={}))
        freshness = 100.0
        if stats.total_documents:
            freshness = round(100 * (1 - len(stats.stale_documents) / stats.total_documents), 2)
        completeness = [d["scores"]["completeness"] for d in documents]
        state = SystemState(
            document_stats=stats,
            usage_patterns=usage,
            assessment_results=assessment,
            system_health={
                "documentationCoverage": round(sum(completeness) / len(completeness), 2) if completeness else 0.0,
                "linkIntegrity": link_integrity(files),
                "contentFreshness": freshness,
                "runReliability": runs["reliability"],
            },
        )

        atomic_write_json(
            s.assessment_file,
            {
                **assessment.model_dump(mode="json", by_alias=True),
                "systemHealth": state.system_health,
                "assessedAt": now.isoformat(),
                "documents": documents,
            },
        )
        logger.info(
            "Assessed %d document(s), average %.1f; %d run envelope(s)",
            len(documents),
            assessment.average_score,
            runs["total"],
        )
        return {
            "systemState": state.model_dump(mode="json", by_alias=True),
            "documents": documents,
            "runs": runs,
        }

    def trigger_evolution(self, ctx: PhaseContext) -> dict[str, Any]:
        state = SystemState.model_validate(ctx.output_of(RUN_ASSESSMENT)["systemState"])
        actions = DocumentActions(
            self._settings.docs_dir,
            self._settings.state_dir,
            self._clock,
            max_files=self._settings.max_action_files,
            on_experiment=lambda: self._generator.enqueue_daily(
                "innovation", "interactive documentation formats"
            ),
        )
        evaluator = EvolutionTriggerEvaluator(self._history, actions.handlers(), clock=self._clock)
        triggers = evaluator.run(state)
        return {
            "triggers": [trigger_to_dict(t) for t in triggers],
            "statistics": evaluator.statistics(),
        }

    def generate_reports(self, ctx: PhaseContext) -> dict[str, Any]:
        assessment = ctx.output_of(RUN_ASSESSMENT)
        evolution = ctx.output_of(TRIGGER_EVOLUTION)
        state = assessment["systemState"]
        report = {
            "workflowId": ctx.workflow_id,
            "generatedAt": self._clock().isoformat(),
            "assessment": state["assessmentResults"],
            "systemHealth": state["systemHealth"],
            "documentStats": state["documentStats"],
            "runs": assessment["runs"],
            "triggers": evolution["triggers"],
            "triggerStatistics": evolution["statistics"],
        }
        path = atomic_write_json(self._settings.reports_dir / f"{ctx.workflow_id}.json", report)
        return {"report": str(path)}

    def update_metrics(self, ctx: PhaseContext) -> dict[str, Any]:
        state = SystemState.model_validate(ctx.output_of(RUN_ASSESSMENT)["systemState"])
        trigger_stats = ctx.output_of(TRIGGER_EVOLUTION)["statistics"]
        timeline = timeline_metrics(self._events.get_events(ctx.workflow_id))

        finished = trigger_stats["completed"] + trigger_stats["failed"]
        total_docs = state.document_stats.total_documents
        metrics = {
            "documentationCompleteness": state.system_health.get("documentationCoverage", 0.0),
            "systemReliability": round(100 * timeline["successRate"], 2),
            "evolutionEffectiveness": round(100 * trigger_stats["successRate"], 2) if finished else 100.0,
            "userEngagement": (
                round(100 * (1 - len(state.usage_patterns.least_accessed) / total_docs), 2)
                if total_docs
                else 0.0
            ),
            "technicalDebt": (
                round(100 * len(state.assessment_results.needs_improvement) / total_docs, 2)
                if total_docs
                else 0.0
            ),
        }
        score = health_score(metrics)

        path = self._settings.metrics_file
        previous = read_json(path, default={})
        history = list(previous.get("history", [])) if isinstance(previous, dict) else []
        history.append({"workflowId": ctx.workflow_id, "healthScore": score})
        atomic_write_json(
            path,
            {
                "updatedAt": self._clock().isoformat(),
                "workflowId": ctx.workflow_id,
                "healthScore": score,
                "healthMetrics": metrics,
                "timeline": timeline,
                "history": history[-METRICS_HISTORY_LIMIT:],
            },
        )
        logger.info("System health score: %d/100", score)
        return {"healthScore": score, "healthMetrics": metrics, "metricsFile": str(path)}

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _assess_runs(self) -> dict[str, Any]:
        total = valid = aborted = 0
        invalid = []
        for path in sorted(self._settings.out_dir.glob("*.result.json")):
            total += 1
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                validate_run_envelope(data)
                run = run_from_dict(data)
            except (json.JSONDecodeError, ValidationFailure) as e:
                invalid.append(path.name)
                logger.warning("Invalid run envelope %s: %s", path.name, e)
                continue
            valid += 1
            if run.summary.decision.startswith("aborted"):
                aborted += 1
        reliability = 100.0 if total == 0 else round(100 * (valid - aborted) / total, 2)
        return {
            "total": total,
            "valid": valid,
            "aborted": aborted,
            "invalid": invalid,
            "reliability": reliability,
        }

    def _contingency(self, name: str) -> ContingencyAction:
        def action(phase: str, error: Exception) -> dict[str, Any]:
            note = {
                "contingency": name,
                "phase": phase,
                "plan": CONTINGENCY_PLANS[name],
                "error": f"{type(error).__name__}: {error}",
                "at": self._clock().isoformat(),
            }
            path = self._settings.state_dir / "contingencies.jsonl"
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                f.write(json.dumps(note) + "\n")
            logger.warning("Contingency %s for %s: %s", name, phase, CONTINGENCY_PLANS[name])
            return {"summary": CONTINGENCY_PLANS[name]}

        return action
