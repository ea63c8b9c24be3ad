"""
The five control-flow shapes an intent can take.

Each strategy drives the executor's step primitives and returns the
(decision, rationale) pair for the run summary.
"""

import logging
from collections.abc import Callable

from intentflow.application.executor import RunBuilder, TopologyExecutor, decision_text
from intentflow.application.scoring import select_sibling
from intentflow.domain.exceptions import (
    BudgetExceeded,
    ConfigError,
    ServerUnavailable,
    ValidationFailure,
)
from intentflow.domain.models import (
    Artifact,
    Intent,
    Run,
    Step,
    StepOutput,
    TieBreak,
    ToolCall,
    Topology,
)
from intentflow.domain.templates import Reference, iter_placeholders, output_text

logger = logging.getLogger(__name__)

Strategy = Callable[[TopologyExecutor, Intent, RunBuilder, int], tuple[str, str]]


# =============================================================================
# CHAIN
# =============================================================================


def run_chain(
    executor: TopologyExecutor, intent: Intent, builder: RunBuilder, depth: int
) -> tuple[str, str]:
    """Calls in declared order; each may reference only earlier steps."""
    check_chain_references(intent.calls)
    last: Step | None = None
    for i, call in enumerate(intent.calls):
        last = executor.invoke(
            intent,
            builder,
            call,
            label=f"call[{i}]",
            parents=(last.step_id,) if last else (),
        )
    return decision_text(last), f"chain of {len(intent.calls)} calls completed"


def check_chain_references(calls: tuple[ToolCall, ...]) -> None:
    """
    Reject forward and unknown references before anything runs.

    Raises:
        ConfigError: If call i references step i or later, uses ``last`` in
            the first call, or names an alias or variable a chain never binds
    """
    for i, call in enumerate(calls):
        for ref in iter_placeholders(call.params):
            if not isinstance(ref, Reference):
                raise ConfigError(f"calls[{i}]: unknown variable {{{{{ref}}}}} in a chain")
            if ref.step_index is not None:
                if ref.step_index >= i:
                    raise ConfigError(
                        f"calls[{i}]: forward reference {{{{{ref.expression}}}}}"
                    )
            elif (ref.alias or "").lower() == "last":
                if i == 0:
                    raise ConfigError(
                        f"calls[0]: {{{{{ref.expression}}}}} has no earlier step"
                    )
            else:
                raise ConfigError(
                    f"calls[{i}]: unknown reference {{{{{ref.expression}}}}}"
                )


# =============================================================================
# TREE
# =============================================================================


def run_tree(
    executor: TopologyExecutor, intent: Intent, builder: RunBuilder, depth: int
) -> tuple[str, str]:
    """
    Up to b sibling hypotheses per level, up to d levels.

    Each level expands from the previous level's selected sibling, bound as
    the ``parent`` alias and the ``parentText`` variable (empty at level 1).
    """
    budgets = intent.budgets
    b = budgets.branch_factor
    if len(intent.calls) > b:
        raise BudgetExceeded(
            f"{intent.name}: {len(intent.calls)} sibling calls exceed branchFactor={b}",
            budget="branchFactor",
            limit=b,
        )
    sibling_calls = intent.calls if len(intent.calls) > 1 else intent.calls * b

    parent: Step | None = None
    for level in range(1, budgets.depth + 1):
        group = f"level-{level}"
        siblings = []
        for branch, call in enumerate(sibling_calls):
            step = executor.invoke(
                intent,
                builder,
                call,
                label=f"level{level}.branch{branch}",
                aliases={"parent": parent.step_id} if parent else {},
                variables={
                    "branch": branch,
                    "depth": level,
                    "parentText": (output_text(parent.output) or "") if parent else "",
                },
                group=group,
                parents=(parent.step_id,) if parent else (),
            )
            builder.branches_tried += 1
            siblings.append(executor.score(intent, builder, step))

        winner = select_sibling(siblings, budgets.score_threshold, intent.tie_break)
        if winner is None:
            builder.note(f"{group}: no sibling reached score {budgets.score_threshold}")
            break
        parent = builder.select(winner.step_id)
        logger.debug("%s: selected step %d (score %.3f)", group, winner.step_id, winner.score)

    if parent is None:
        return (
            f"no hypothesis reached threshold {budgets.score_threshold}",
            f"{builder.branches_tried} hypotheses scored",
        )
    return (
        decision_text(parent),
        f"selected step {parent.step_id} with score {parent.score:.3f}",
    )


# =============================================================================
# GRAPH
# =============================================================================


def graph_order(calls: tuple[ToolCall, ...]) -> list[tuple[str, ToolCall]]:
    """
    Topological order of graph nodes, ties broken by declaration order.

    Calls without an ``id`` are named ``n<index>``.

    Raises:
        ConfigError: On unknown ``after`` ids, cycles, or merge nodes with
            fewer than two predecessors
    """
    nodes = {(c.node_id or f"n{i}"): c for i, c in enumerate(calls)}
    position = {node_id: i for i, node_id in enumerate(nodes)}
    for node_id, call in nodes.items():
        for pred in call.after:
            if pred not in nodes:
                raise ConfigError(f"graph node '{node_id}' is after unknown node '{pred}'")
        if call.merge and len(set(call.after)) < 2:
            raise ConfigError(f"merge node '{node_id}' needs at least 2 predecessors")

    done: set[str] = set()
    order: list[tuple[str, ToolCall]] = []
    while len(order) < len(nodes):
        ready = [
            n
            for n, c in nodes.items()
            if n not in done and all(p in done for p in c.after)
        ]
        if not ready:
            cycle = sorted(set(nodes) - done, key=position.__getitem__)
            raise ConfigError(f"graph has a cycle among: {', '.join(cycle)}")
        node_id = min(ready, key=position.__getitem__)
        done.add(node_id)
        order.append((node_id, nodes[node_id]))
    return order


def run_graph(
    executor: TopologyExecutor, intent: Intent, builder: RunBuilder, depth: int
) -> tuple[str, str]:
    """DAG of calls; merge nodes synthesize ≥2 predecessors, evaluate nodes are selected per layer."""
    order = graph_order(intent.calls)
    budgets = intent.budgets

    position = {node_id: i for i, (node_id, _) in enumerate(order)}
    layer: dict[str, int] = {}
    ancestors: dict[str, set[str]] = {}
    for node_id, call in order:
        if len(call.after) > budgets.branch_factor:
            raise BudgetExceeded(
                f"graph node '{node_id}' fan-in {len(call.after)} exceeds "
                f"branchFactor={budgets.branch_factor}",
                budget="branchFactor",
                limit=budgets.branch_factor,
            )
        layer[node_id] = 1 + max((layer[p] for p in call.after), default=0)
        ancestors[node_id] = set(call.after).union(*(ancestors[p] for p in call.after))
        _check_graph_references(node_id, call, ancestors[node_id], position)
    graph_depth = max(layer.values(), default=0)
    if graph_depth > budgets.depth:
        raise BudgetExceeded(
            f"graph depth {graph_depth} exceeds depth={budgets.depth}",
            budget="depth",
            limit=budgets.depth,
        )

    step_of: dict[str, int] = {}
    evaluated: dict[int, list[Step]] = {}
    for node_id, call in order:
        variables = {"depth": layer[node_id]}
        if call.merge:
            variables["merged"] = "\n\n".join(
                output_text(builder.step(step_of[p]).output) or "" for p in call.after
            )
        step = executor.invoke(
            intent,
            builder,
            call,
            label=node_id,
            aliases={a: step_of[a] for a in ancestors[node_id]},
            variables=variables,
            group=f"layer-{layer[node_id]}" if call.evaluate else None,
            parents=tuple(step_of[p] for p in call.after),
            visible={step_of[a] for a in ancestors[node_id]},
        )
        step_of[node_id] = step.step_id
        if call.evaluate:
            builder.branches_tried += 1
            evaluated.setdefault(layer[node_id], []).append(
                executor.score(intent, builder, step)
            )

    final = builder.step(builder.next_id - 1) if builder.next_id else None
    for level in sorted(evaluated):
        winner = select_sibling(evaluated[level], budgets.score_threshold, intent.tie_break)
        if winner is None:
            builder.note(f"layer-{level}: no node reached score {budgets.score_threshold}")
            continue
        final = builder.select(winner.step_id)
    return decision_text(final), f"graph of {len(order)} nodes across {graph_depth} layers"


def _check_graph_references(
    node_id: str, call: ToolCall, visible: set[str], position: dict[str, int]
) -> None:
    """Every step reference must point at an ancestor; {{last}} is the latest ancestor."""
    for ref in iter_placeholders(call.params):
        if not isinstance(ref, Reference):
            if ref not in ("merged", "depth"):
                raise ConfigError(f"graph node '{node_id}': unknown variable {{{{{ref}}}}}")
            if ref == "merged" and not call.merge:
                raise ConfigError(f"graph node '{node_id}': {{{{merged}}}} outside a merge node")
            continue
        alias = ref.alias
        if alias is None:
            if ref.step_index not in {position[a] for a in visible}:
                raise ConfigError(
                    f"graph node '{node_id}' references {{{{{ref.expression}}}}}, "
                    "which is not an ancestor"
                )
            continue
        if alias.lower() == "last":
            if not visible:
                raise ConfigError(
                    f"graph node '{node_id}' uses {{{{{ref.expression}}}}} but has no ancestors"
                )
            continue
        if alias not in visible:
            raise ConfigError(
                f"graph node '{node_id}' references '{alias}', which is not an ancestor"
            )


# =============================================================================
# ORCHESTRATOR
# =============================================================================


def run_orchestrator(
    executor: TopologyExecutor, intent: Intent, builder: RunBuilder, depth: int
) -> tuple[str, str]:
    """Child intents run sequentially; one step and one run artifact per child."""
    if depth + 1 > intent.budgets.depth:
        raise BudgetExceeded(
            f"{intent.name}: orchestrator nesting exceeds depth={intent.budgets.depth}",
            budget="depth",
            limit=intent.budgets.depth,
        )

    for i, child in enumerate(intent.children):
        builder.ensure_capacity()
        try:
            child_run = executor.execute(child, depth=depth + 1)
        except (ServerUnavailable, BudgetExceeded, ValidationFailure) as e:
            if e.partial_run is not None:
                _record_child(builder, i, child, e.partial_run)
            raise
        _record_child(builder, i, child, child_run)

    children = ", ".join(c.name for c in intent.children)
    return (
        f"{len(intent.children)} child intents completed",
        f"children: {children}",
    )


def _record_child(builder: RunBuilder, index: int, child: Intent, child_run: Run) -> None:
    step = builder.add_step(
        label=f"child[{index}]",
        tool=f"intent:{child.name}",
        inputs={"intent": child.name, "mode": child.topology.value},
        output=StepOutput(
            text=child_run.summary.decision,
            json={"runId": child_run.run_id, "steps": len(child_run.steps)},
        ),
    )
    builder.branches_tried += child_run.metrics.branches_tried
    builder.tokens += child_run.metrics.tokens
    for artifact in child_run.artifacts:
        builder.add_artifact(artifact)
    builder.add_artifact(
        Artifact(
            artifact_type="run",
            data_ref=child_run.run_id,
            meta={
                "intent": child.name,
                "mode": child.topology.value,
                "steps": len(child_run.steps),
                "step": step.step_id,
            },
        )
    )


# =============================================================================
# OPTIMIZER
# =============================================================================


def run_optimizer(
    executor: TopologyExecutor, intent: Intent, builder: RunBuilder, depth: int
) -> tuple[str, str]:
    """
    propose -> evaluate -> refine for at most K iterations.

    Iteration 1 runs calls[0]; later iterations run calls[1] (or calls[0])
    with ``best`` bound to the best candidate so far and ``score``,
    ``iteration`` as variables. Stops early once best >= threshold.
    """
    budgets = intent.budgets
    propose = intent.calls[0]
    refine = intent.calls[1] if len(intent.calls) > 1 else intent.calls[0]

    def candidate(iteration: int, best: Step | None) -> Step:
        step = executor.invoke(
            intent,
            builder,
            propose if best is None else refine,
            label=f"iteration{iteration}",
            aliases={"best": best.step_id} if best else {},
            variables={
                "iteration": iteration,
                "score": best.score if best else 0.0,
            },
            group="optimizer",
            parents=(best.step_id,) if best else (),
        )
        builder.branches_tried += 1
        return executor.score(intent, builder, step)

    best = candidate(1, None)
    iterations = 1
    while not _reaches(best, budgets.score_threshold) and iterations < budgets.max_iterations:
        iterations += 1
        step = candidate(iterations, best)
        if _improves(step, best, intent.tie_break):
            best = step

    if _reaches(best, budgets.score_threshold):
        builder.select(best.step_id)
        return (
            decision_text(best),
            f"best candidate step {best.step_id} scored {best.score:.3f} "
            f"after {iterations} iteration(s)",
        )
    builder.note(f"no candidate reached score {budgets.score_threshold}")
    return (
        f"no candidate reached threshold {budgets.score_threshold}",
        f"best score {best.score or 0.0:.3f} after {iterations} iteration(s)",
    )


def _reaches(step: Step, threshold: float) -> bool:
    return step.score is not None and step.score >= threshold


def _improves(candidate: Step, best: Step, tie_break: TieBreak) -> bool:
    if tie_break == TieBreak.HIGHEST_ID:
        return (candidate.score or 0.0) >= (best.score or 0.0)
    return (candidate.score or 0.0) > (best.score or 0.0)


TOPOLOGIES: dict[Topology, Strategy] = {
    Topology.CHAIN: run_chain,
    Topology.TREE: run_tree,
    Topology.GRAPH: run_graph,
    Topology.ORCHESTRATOR: run_orchestrator,
    Topology.OPTIMIZER: run_optimizer,
}
