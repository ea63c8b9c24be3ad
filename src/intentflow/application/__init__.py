"""
Application layer for intentflow.

Contains the executor and the orchestration around it: the intent queue,
the phase orchestrator and the evolution trigger evaluator.
"""

from intentflow.application.evolution import EvolutionTriggerEvaluator, TriggerRule
from intentflow.application.executor import ExecutorLimits, RunBuilder, TopologyExecutor
from intentflow.application.intent_generator import IntentGenerator, build_intent
from intentflow.application.phase_orchestrator import (
    PhaseContext,
    PhaseOrchestrator,
    plan_order,
    timeline_metrics,
)
from intentflow.application.pipeline import EvolutionPipeline, IntentRequest, default_plan
from intentflow.application.queue_runner import Debouncer, QueueLayout, QueueRunner
from intentflow.application.scoring import JudgeToolScorer, OutputFieldScorer
from intentflow.application.tool_export import ToolExporter

__all__ = [
    "Debouncer",
    "EvolutionPipeline",
    "EvolutionTriggerEvaluator",
    "ExecutorLimits",
    "IntentGenerator",
    "IntentRequest",
    "JudgeToolScorer",
    "OutputFieldScorer",
    "PhaseContext",
    "PhaseOrchestrator",
    "QueueLayout",
    "QueueRunner",
    "RunBuilder",
    "ToolExporter",
    "TopologyExecutor",
    "TriggerRule",
    "build_intent",
    "default_plan",
    "plan_order",
    "timeline_metrics",
]
