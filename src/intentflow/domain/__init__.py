"""
Domain layer for intentflow.

Contains the intent, run and trigger models plus the ports adapters
implement. Only the system-state snapshot depends on a third-party library.
"""

from intentflow.domain.exceptions import (
    BudgetExceeded,
    ConfigError,
    IntentflowError,
    PhaseFailure,
    ServerUnavailable,
    ValidationFailure,
)
from intentflow.domain.interfaces import (
    IntentLauncherInterface,
    PhaseEventStoreInterface,
    ScorerInterface,
    ToolGatewayInterface,
    TriggerHistoryInterface,
)
from intentflow.domain.models import (
    Artifact,
    Budgets,
    Intent,
    PhaseResult,
    PhaseStatus,
    PhaseTiming,
    PipelineResult,
    PipelineStatus,
    Plan,
    Priority,
    ProcessResult,
    QueueItemResult,
    QueueItemStatus,
    Run,
    RunMetrics,
    RunSummary,
    ServerSpec,
    Step,
    StepOutput,
    TieBreak,
    ToolCall,
    ToolInfo,
    ToolResponse,
    Topology,
    Trigger,
    TriggerStatus,
)
from intentflow.domain.phase_event import PhaseEvent, PhaseEventType

__all__ = [
    # Models
    "Artifact",
    "Budgets",
    "Intent",
    "PhaseResult",
    "PhaseStatus",
    "PhaseTiming",
    "PipelineResult",
    "PipelineStatus",
    "Plan",
    "Priority",
    "ProcessResult",
    "QueueItemResult",
    "QueueItemStatus",
    "Run",
    "RunMetrics",
    "RunSummary",
    "ServerSpec",
    "Step",
    "StepOutput",
    "TieBreak",
    "ToolCall",
    "ToolInfo",
    "ToolResponse",
    "Topology",
    "Trigger",
    "TriggerStatus",
    # Events
    "PhaseEvent",
    "PhaseEventType",
    # Interfaces
    "ToolGatewayInterface",
    "ScorerInterface",
    "IntentLauncherInterface",
    "PhaseEventStoreInterface",
    "TriggerHistoryInterface",
    # Exceptions
    "IntentflowError",
    "ConfigError",
    "ServerUnavailable",
    "BudgetExceeded",
    "ValidationFailure",
    "PhaseFailure",
]
