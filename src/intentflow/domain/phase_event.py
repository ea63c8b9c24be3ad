"""Phase timeline event models."""

from dataclasses import dataclass
from enum import Enum


class PhaseEventType(str, Enum):
    """Types of orchestration timeline events."""

    PIPELINE_START = "PIPELINE_START"
    PHASE_START = "PHASE_START"
    PHASE_PASS = "PHASE_PASS"
    PHASE_FAIL = "PHASE_FAIL"
    PHASE_RETRY = "PHASE_RETRY"
    PHASE_SKIP = "PHASE_SKIP"
    CONTINGENCY = "CONTINGENCY"
    BUDGET_WARNING = "BUDGET_WARNING"
    PIPELINE_ABORT = "PIPELINE_ABORT"
    PIPELINE_END = "PIPELINE_END"


@dataclass(frozen=True)
class PhaseEvent:
    """Single state transition in an orchestration cycle.

    Events are append-only; success rate and durations are derived from them.
    """

    event_id: str
    event_type: PhaseEventType
    workflow_id: str
    phase: str | None = None
    attempt: int | None = None
    verdict: str | None = None  # "PASS", "FAIL"
    summary: str = ""
    created_at: str = ""  # ISO 8601
    elapsed_ms: int | None = None
