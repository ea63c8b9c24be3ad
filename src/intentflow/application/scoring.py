"""
Candidate scoring and sibling selection.

Scoring is a pluggable numeric function. Two scorers ship with intentflow:
one reads a score the tool itself reported, the other asks a judge tool.
"""

import re
from collections.abc import Iterable

from intentflow.domain.exceptions import ServerUnavailable
from intentflow.domain.interfaces import ScorerInterface, ToolGatewayInterface
from intentflow.domain.models import ServerSpec, Step, TieBreak, ToolCall
from intentflow.domain.templates import StepContext, output_json, resolve_params

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def clamp_score(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


class OutputFieldScorer(ScorerInterface):
    """Reads a numeric field from the candidate's JSON output (0.0 if absent)."""

    def __init__(self, field: str = "score"):
        self._field = field

    def score(self, step: Step, server: ServerSpec) -> float:
        data = output_json(step.output)
        if isinstance(data, dict):
            value = data.get(self._field)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return float(value)
        return 0.0


class JudgeToolScorer(ScorerInterface):
    """
    Scores a candidate by calling a judge tool.

    The judge call's params may reference ``{{candidate.Text}}`` /
    ``{{candidate.Json...}}`` and the ``{{label}}`` variable. The score is
    taken from the judge's JSON ``score`` field, else the first number in
    its text. Judge calls are not recorded as steps.
    """

    def __init__(self, gateway: ToolGatewayInterface, judge: ToolCall):
        self._gateway = gateway
        self._judge = judge

    def score(self, step: Step, server: ServerSpec) -> float:
        context = StepContext(
            current_id=step.step_id + 1,
            outputs={step.step_id: step.output},
            aliases={"candidate": step.step_id},
            variables={"label": step.label},
        )
        params = resolve_params(self._judge.params, context)
        response = self._gateway.call_tool(server, self._judge.tool, params)

        if isinstance(response.json, dict):
            value = response.json.get("score")
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return float(value)
        match = _NUMBER.search(response.text or "")
        if match is None:
            raise ServerUnavailable(
                f"{server.name}: judge '{self._judge.tool}' returned no score"
            )
        return float(match.group(0))


def select_sibling(
    siblings: Iterable[Step],
    threshold: float,
    tie_break: TieBreak = TieBreak.LOWEST_ID,
) -> Step | None:
    """
    Pick the winner of one branching group.

    The winner has the maximum score in the group and a score >= threshold.
    Ties go to the lowest (or highest) step id. Returns None when no sibling
    qualifies.
    """
    scored = [s for s in siblings if s.score is not None]
    if not scored:
        return None
    best = max(s.score for s in scored)  # type: ignore[type-var]
    if best < threshold:
        return None
    tied = [s for s in scored if s.score == best]
    if tie_break == TieBreak.HIGHEST_ID:
        return max(tied, key=lambda s: s.step_id)
    return min(tied, key=lambda s: s.step_id)
