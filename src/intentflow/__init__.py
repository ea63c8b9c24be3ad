"""
intentflow: bounded, auditable tool workflows.

Declarative intents invoke external tool processes under one of five
topologies (chain, tree, graph, orchestrator, optimizer) and produce a
canonical Run envelope. Around that core: a filesystem intent queue, a
phase-based evolution pipeline and a rule-based evolution trigger evaluator.

Example:
    from intentflow import TopologyExecutor, load_intent
    from intentflow.infrastructure import ProcessToolGateway

    intent = load_intent(Path("intents/queue/demo.json"))
    run = TopologyExecutor(ProcessToolGateway(timeout=30)).execute(intent)
    print(run.summary.decision)
"""

__version__ = "0.3.0"

# Application layer (orchestration)
from intentflow.application.evolution import EvolutionTriggerEvaluator
from intentflow.application.executor import ExecutorLimits, TopologyExecutor
from intentflow.application.phase_orchestrator import PhaseOrchestrator
from intentflow.application.pipeline import EvolutionPipeline
from intentflow.application.queue_runner import QueueRunner

# Settings
from intentflow.config import Settings, load_settings

# Domain exceptions
from intentflow.domain.exceptions import (
    BudgetExceeded,
    ConfigError,
    IntentflowError,
    PhaseFailure,
    ServerUnavailable,
    ValidationFailure,
)

# Intent files and envelopes
from intentflow.domain.envelope import run_from_dict, run_to_dict
from intentflow.domain.intent import load_intent, parse_intent
from intentflow.domain.models import (
    Budgets,
    Intent,
    Plan,
    Run,
    ServerSpec,
    Step,
    ToolCall,
    Topology,
    Trigger,
)

__all__ = [
    # Version
    "__version__",
    # Application
    "EvolutionPipeline",
    "EvolutionTriggerEvaluator",
    "ExecutorLimits",
    "PhaseOrchestrator",
    "QueueRunner",
    "TopologyExecutor",
    # Settings
    "Settings",
    "load_settings",
    # Intents and runs
    "load_intent",
    "parse_intent",
    "run_from_dict",
    "run_to_dict",
    # Models
    "Budgets",
    "Intent",
    "Plan",
    "Run",
    "ServerSpec",
    "Step",
    "ToolCall",
    "Topology",
    "Trigger",
    # Exceptions
    "BudgetExceeded",
    "ConfigError",
    "IntentflowError",
    "PhaseFailure",
    "ServerUnavailable",
    "ValidationFailure",
]
