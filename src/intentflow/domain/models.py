"""
Domain models for intentflow.

Pure data structures for intents, runs, plans and triggers. Everything that
crosses a component boundary is a frozen dataclass; the only mutable
accumulator (RunBuilder) lives in the application layer and seals into a Run.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from intentflow.domain.phase_event import PhaseEvent


# =============================================================================
# INTENT
# =============================================================================


class Topology(str, Enum):
    """Control-flow shape of an intent."""

    CHAIN = "chain"
    TREE = "tree"
    GRAPH = "graph"
    ORCHESTRATOR = "orchestrator"
    OPTIMIZER = "optimizer"


class TieBreak(str, Enum):
    """Which sibling wins when several share the maximum score."""

    LOWEST_ID = "lowest_id"
    HIGHEST_ID = "highest_id"


@dataclass(frozen=True)
class Budgets:
    """Hard caps bounding a run's size."""

    max_steps: int = 32  # N
    branch_factor: int = 3  # b
    depth: int = 3  # d
    max_iterations: int = 5  # K
    score_threshold: float = 0.5  # τ


@dataclass(frozen=True)
class ServerSpec:
    """External tool server process."""

    name: str = "Everything"
    command: str = "npx"
    args: tuple[str, ...] = ("-y", "@modelcontextprotocol/server-everything")


@dataclass(frozen=True)
class ToolCall:
    """One declared tool invocation; params are templates."""

    tool: str
    params: dict[str, Any] = field(default_factory=dict)
    # Graph-only fields
    node_id: str | None = None
    after: tuple[str, ...] = ()
    merge: bool = False
    evaluate: bool = False


@dataclass(frozen=True)
class Intent:
    """Declarative, bounded workflow. Immutable once submitted."""

    name: str
    topology: Topology
    server: ServerSpec
    calls: tuple[ToolCall, ...]
    budgets: Budgets = field(default_factory=Budgets)
    judge: ToolCall | None = None
    children: tuple["Intent", ...] = ()
    tie_break: TieBreak = TieBreak.LOWEST_ID
    out: str | None = None
    list_tools: bool = False  # Record the server's tool list in the run notes


# =============================================================================
# RUN ENVELOPE
# =============================================================================


@dataclass(frozen=True)
class StepOutput:
    """Output of one tool call."""

    text: str | None = None
    json: Any = None


@dataclass(frozen=True)
class Step:
    """One executed tool call inside a run."""

    step_id: int  # Causal position in the run, 0-based
    label: str
    tool: str
    inputs: dict[str, Any]
    output: StepOutput
    score: float | None = None
    selected: bool = False
    group: str | None = None  # Branching group for selection
    parents: tuple[int, ...] = ()


@dataclass(frozen=True)
class Artifact:
    """Side-output of a step. Referenced, never mutated."""

    artifact_type: str
    path: str | None = None
    data_ref: str | None = None
    sha256: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RunSummary:
    decision: str
    rationale: str = ""
    notes: tuple[str, ...] = ()


@dataclass(frozen=True)
class RunMetrics:
    duration_ms: int = 0
    branches_tried: int = 0
    tokens: int = 0


@dataclass(frozen=True)
class Run:
    """
    Canonical structured output of one intent execution.

    Sealed once the topology completes or fails.
    """

    run_id: str
    intent_name: str
    mode: Topology
    server: ServerSpec
    steps: tuple[Step, ...]
    artifacts: tuple[Artifact, ...]
    summary: RunSummary
    metrics: RunMetrics

    @property
    def selected_steps(self) -> tuple[Step, ...]:
        return tuple(s for s in self.steps if s.selected)

    @property
    def tool_sequence(self) -> tuple[str, ...]:
        return tuple(s.tool for s in self.steps)


# =============================================================================
# TOOL GATEWAY
# =============================================================================


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of one blocking external process."""

    exit_code: int | None
    stdout: str
    stderr: str
    duration_ms: int = 0
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


@dataclass(frozen=True)
class ToolResponse:
    """Parsed response of one tool call."""

    text: str | None
    json: Any = None
    artifacts: tuple[Artifact, ...] = ()
    tokens: int = 0


@dataclass(frozen=True)
class ToolInfo:
    """One tool advertised by a server's tools/list."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] | None = None


# =============================================================================
# QUEUE
# =============================================================================


class QueueItemStatus(str, Enum):
    """Lifecycle of a queued intent file."""

    PENDING = "pending"
    PROCESSING = "processing"
    ARCHIVED_OK = "archived-ok"
    ARCHIVED_ERROR = "archived-error"


@dataclass(frozen=True)
class QueueItemResult:
    name: str
    status: QueueItemStatus
    exit_code: int | None
    log_path: str
    archive_path: str
    result_path: str | None = None
    error: str | None = None


# =============================================================================
# PHASE PLAN
# =============================================================================


class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class PhaseStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"  # A dependency did not complete


class PipelineStatus(str, Enum):
    COMPLETED = "completed"
    COMPLETED_WITH_FAILURES = "completed_with_failures"
    ABORTED = "aborted"


@dataclass(frozen=True)
class PhaseTiming:
    max_execution_time_ms: int = 300_000  # Soft threshold, monitored only
    retry_attempts: int = 3


@dataclass(frozen=True)
class Plan:
    """Declared once per orchestration cycle."""

    sequence: tuple[str, ...]
    dependencies: dict[str, tuple[str, ...]] = field(default_factory=dict)
    priorities: dict[str, Priority] = field(default_factory=dict)
    timing: PhaseTiming = field(default_factory=PhaseTiming)
    contingencies: dict[str, str] = field(default_factory=dict)

    def priority_of(self, phase: str) -> Priority:
        return self.priorities.get(phase, Priority.LOW)

    def requires(self, phase: str) -> tuple[str, ...]:
        return self.dependencies.get(phase, ())


@dataclass(frozen=True)
class PhaseResult:
    phase: str
    status: PhaseStatus
    attempts: int = 0
    started_at: str | None = None
    finished_at: str | None = None
    output: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    contingency: str | None = None  # Name of the contingency invoked, if any


@dataclass(frozen=True)
class PipelineResult:
    workflow_id: str
    status: PipelineStatus
    phases: dict[str, PhaseResult]
    events: tuple["PhaseEvent", ...] = ()
    duration_ms: int = 0

    @property
    def success_rate(self) -> float:
        attempted = [
            r
            for r in self.phases.values()
            if r.status in (PhaseStatus.COMPLETED, PhaseStatus.FAILED)
        ]
        if not attempted:
            return 0.0
        done = sum(1 for r in attempted if r.status == PhaseStatus.COMPLETED)
        return done / len(attempted)


# =============================================================================
# EVOLUTION TRIGGERS
# =============================================================================


class TriggerStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Trigger:
    """A rule-matched, bounded corrective action."""

    trigger_id: str
    trigger_type: str
    priority: Priority
    description: str
    action: str
    condition: str  # Human-readable rendering of the matched condition
    status: TriggerStatus
    created_at: str
    targets: tuple[str, ...] = ()
    completed_at: str | None = None
    error: str | None = None

    @property
    def fingerprint(self) -> str:
        """Identity used to suppress re-firing one-shot triggers."""
        return f"{self.trigger_type}:{','.join(sorted(self.targets))}"
