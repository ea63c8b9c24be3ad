"""
TopologyExecutor: drives one intent through its topology over a tool gateway.

Owns budget enforcement and envelope sealing. The control-flow shapes live
in topologies.py; this module provides the step primitives they share.
"""

import dataclasses
import hashlib
import logging
import time
import uuid
from collections.abc import Collection
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from intentflow.application.scoring import (
    JudgeToolScorer,
    OutputFieldScorer,
    clamp_score,
)
from intentflow.domain.envelope import run_to_dict
from intentflow.domain.exceptions import (
    BudgetExceeded,
    ServerUnavailable,
    ValidationFailure,
)
from intentflow.domain.interfaces import ScorerInterface, ToolGatewayInterface
from intentflow.domain.models import (
    Artifact,
    Intent,
    Run,
    RunMetrics,
    RunSummary,
    Step,
    StepOutput,
    ToolCall,
    ToolResponse,
)
from intentflow.domain.templates import StepContext, output_text, resolve_params
from intentflow.schemas import validate_run_envelope

logger = logging.getLogger(__name__)

_DECISION_LIMIT = 500


@dataclass(frozen=True)
class ExecutorLimits:
    """Ceilings an intent's declared budgets may not exceed."""

    max_steps: int = 256
    branch_factor: int = 8
    depth: int = 8
    max_iterations: int = 32


class RunBuilder:
    """
    Mutable accumulator for one Run.

    Steps are appended in causal order and never reordered; only score and
    selection of an existing step may be updated before sealing.
    """

    def __init__(self, intent: Intent):
        self.intent = intent
        self.run_id = str(uuid.uuid4())
        self.branches_tried = 0
        self.tokens = 0
        self._steps: list[Step] = []
        self._artifacts: list[Artifact] = []
        self._notes: list[str] = []
        self._started = time.monotonic()

    @property
    def next_id(self) -> int:
        return len(self._steps)

    @property
    def steps(self) -> tuple[Step, ...]:
        return tuple(self._steps)

    @property
    def outputs(self) -> dict[int, StepOutput]:
        return {s.step_id: s.output for s in self._steps}

    def step(self, step_id: int) -> Step:
        return self._steps[step_id]

    def ensure_capacity(self) -> None:
        """Raise BudgetExceeded if one more step would exceed N."""
        limit = self.intent.budgets.max_steps
        if len(self._steps) >= limit:
            raise BudgetExceeded(
                f"{self.intent.name}: step {len(self._steps) + 1} exceeds maxSteps={limit}",
                budget="maxSteps",
                limit=limit,
            )

    def add_step(
        self,
        label: str,
        tool: str,
        inputs: dict[str, Any],
        output: StepOutput,
        group: str | None = None,
        parents: tuple[int, ...] = (),
    ) -> Step:
        self.ensure_capacity()
        step = Step(
            step_id=self.next_id,
            label=label,
            tool=tool,
            inputs=inputs,
            output=output,
            group=group,
            parents=parents,
        )
        self._steps.append(step)
        return step

    def record_response(self, step: Step, response: ToolResponse) -> None:
        text = response.text or ""
        self.tokens += response.tokens or len(text.split())
        for artifact in response.artifacts:
            self.add_artifact(artifact, step.step_id)

    def add_artifact(self, artifact: Artifact, step_id: int | None = None) -> None:
        if artifact.path and artifact.sha256 is None:
            artifact = dataclasses.replace(artifact, sha256=_file_digest(artifact.path))
        if step_id is not None:
            artifact = dataclasses.replace(artifact, meta={**artifact.meta, "step": step_id})
        self._artifacts.append(artifact)

    def set_score(self, step_id: int, score: float) -> Step:
        self._steps[step_id] = dataclasses.replace(self._steps[step_id], score=score)
        return self._steps[step_id]

    def select(self, step_id: int) -> Step:
        step = self._steps[step_id]
        for other in self._steps:
            if other.group == step.group and other.selected and other.step_id != step_id:
                raise ValueError(f"Group {step.group} already has a selected step")
        self._steps[step_id] = dataclasses.replace(step, selected=True)
        return self._steps[step_id]

    def note(self, message: str) -> None:
        self._notes.append(message)

    def seal(self, decision: str, rationale: str = "") -> Run:
        """Freeze the accumulated state into a Run."""
        return Run(
            run_id=self.run_id,
            intent_name=self.intent.name,
            mode=self.intent.topology,
            server=self.intent.server,
            steps=tuple(self._steps),
            artifacts=tuple(self._artifacts),
            summary=RunSummary(
                decision=decision or f"{self.intent.name} completed",
                rationale=rationale,
                notes=tuple(self._notes),
            ),
            metrics=RunMetrics(
                duration_ms=int((time.monotonic() - self._started) * 1000),
                branches_tried=self.branches_tried,
                tokens=self.tokens,
            ),
        )


class TopologyExecutor:
    """
    Executes intents under their declared topology.

    The executor never retries: gateway failures surface as ServerUnavailable
    and budget violations as BudgetExceeded, both carrying the sealed partial
    Run.
    """

    def __init__(
        self,
        gateway: ToolGatewayInterface,
        scorer: ScorerInterface | None = None,
        limits: ExecutorLimits | None = None,
    ):
        """
        Args:
            gateway: Tool gateway used for every step
            scorer: Candidate scorer (default: OutputFieldScorer). Intents
                declaring a judge call are scored by that judge instead.
            limits: Ceilings for declared budgets
        """
        self._gateway = gateway
        self._scorer = scorer or OutputFieldScorer()
        self._limits = limits or ExecutorLimits()

    def execute(self, intent: Intent, depth: int = 0) -> Run:
        """
        Execute an intent and return its sealed Run.

        Args:
            intent: The intent to run
            depth: Orchestrator nesting level (0 for top-level intents)

        Raises:
            ConfigError: Invalid templates or graph structure
            ServerUnavailable: Tool process failure
            BudgetExceeded: A budget was exceeded
            ValidationFailure: The sealed envelope violates the run schema
        """
        # Lazy import to avoid circular dependency
        from intentflow.application.topologies import TOPOLOGIES

        builder = RunBuilder(intent)
        logger.info(
            "Run %s: executing %s (%s)", builder.run_id, intent.name, intent.topology.value
        )
        try:
            self._check_ceilings(intent)
            if intent.list_tools:
                self._note_tools(intent, builder)
            decision, rationale = TOPOLOGIES[intent.topology](self, intent, builder, depth)
        except (ServerUnavailable, BudgetExceeded, ValidationFailure) as e:
            logger.error("Run %s aborted: %s", builder.run_id, e)
            builder.note(f"aborted: {e}")
            e.partial_run = builder.seal(f"aborted: {type(e).__name__}", str(e))
            raise

        run = builder.seal(decision, rationale)
        try:
            validate_run_envelope(run_to_dict(run))
        except ValidationFailure as e:
            e.partial_run = run
            raise
        logger.info("Run %s: %d steps, decision: %s", run.run_id, len(run.steps), decision[:80])
        return run

    def _note_tools(self, intent: Intent, builder: RunBuilder) -> None:
        tools = self._gateway.list_tools(intent.server)
        logger.info("%s offers %d tool(s)", intent.server.name, len(tools))
        builder.note(f"tools available: {', '.join(t.name for t in tools) or '(none)'}")
        for t in tools:
            builder.note(f"- {t.name}: {t.description}" if t.description else f"- {t.name}")

    # -------------------------------------------------------------------------
    # Step primitives used by the topologies
    # -------------------------------------------------------------------------

    def invoke(
        self,
        intent: Intent,
        builder: RunBuilder,
        call: ToolCall,
        label: str,
        aliases: dict[str, int] | None = None,
        variables: dict[str, Any] | None = None,
        group: str | None = None,
        parents: tuple[int, ...] = (),
        visible: Collection[int] | None = None,
    ) -> Step:
        """
        Resolve a call's templates, run it and record the step.

        When `visible` is given, templates only see those steps' outputs, so
        {{last}} is the latest visible step and {{Calls[i]}} must be one of them.
        """
        builder.ensure_capacity()
        outputs = builder.outputs
        if visible is not None:
            outputs = {k: v for k, v in outputs.items() if k in visible}
        context = StepContext(
            current_id=builder.next_id,
            outputs=outputs,
            aliases=aliases or {},
            variables=variables or {},
        )
        inputs = resolve_params(call.params, context)
        logger.debug("Step %d (%s): %s %s", builder.next_id, label, call.tool, inputs)
        response = self._gateway.call_tool(intent.server, call.tool, inputs)
        step = builder.add_step(
            label=label,
            tool=call.tool,
            inputs=inputs,
            output=StepOutput(text=response.text, json=response.json),
            group=group,
            parents=parents,
        )
        builder.record_response(step, response)
        return step

    def score(self, intent: Intent, builder: RunBuilder, step: Step) -> Step:
        """Score a candidate step, clamped to [0, 1]."""
        scorer = (
            JudgeToolScorer(self._gateway, intent.judge)
            if intent.judge is not None
            else self._scorer
        )
        return builder.set_score(step.step_id, clamp_score(scorer.score(step, intent.server)))

    def _check_ceilings(self, intent: Intent) -> None:
        declared = {
            "maxSteps": (intent.budgets.max_steps, self._limits.max_steps),
            "branchFactor": (intent.budgets.branch_factor, self._limits.branch_factor),
            "depth": (intent.budgets.depth, self._limits.depth),
            "maxIterations": (intent.budgets.max_iterations, self._limits.max_iterations),
        }
        for name, (value, ceiling) in declared.items():
            if value > ceiling:
                raise BudgetExceeded(
                    f"{intent.name}: {name}={value} exceeds executor ceiling {ceiling}",
                    budget=name,
                    limit=ceiling,
                )


def decision_text(step: Step | None) -> str:
    """Summary decision derived from a step's output."""
    if step is None:
        return ""
    text = (output_text(step.output) or "").strip()
    if not text:
        return f"{step.tool} completed"
    return text if len(text) <= _DECISION_LIMIT else text[:_DECISION_LIMIT] + "..."


def _file_digest(path: str) -> str | None:
    file_path = Path(path)
    if not file_path.is_file():
        return None
    return hashlib.sha256(file_path.read_bytes()).hexdigest()
