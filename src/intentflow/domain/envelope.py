"""
Run envelope serialization.

The envelope is the JSON contract shared by the executor, the queue runner
and the assessment phases. Keys are camelCase on the wire.
"""

from collections.abc import Mapping
from typing import Any

from intentflow.domain.exceptions import ValidationFailure
from intentflow.domain.models import (
    Artifact,
    Run,
    RunMetrics,
    RunSummary,
    ServerSpec,
    Step,
    StepOutput,
    Topology,
)


def run_to_dict(run: Run) -> dict[str, Any]:
    return {
        "runId": run.run_id,
        "intent": {"name": run.intent_name, "mode": run.mode.value},
        "server": {
            "name": run.server.name,
            "command": run.server.command,
            "args": list(run.server.args),
        },
        "steps": [step_to_dict(s) for s in run.steps],
        "artifacts": [artifact_to_dict(a) for a in run.artifacts],
        "summary": {
            "decision": run.summary.decision,
            "rationale": run.summary.rationale,
            "notes": list(run.summary.notes),
        },
        "metrics": {
            "durationMs": run.metrics.duration_ms,
            "branchesTried": run.metrics.branches_tried,
            "tokens": run.metrics.tokens,
        },
    }


def step_to_dict(step: Step) -> dict[str, Any]:
    output: dict[str, Any] = {}
    if step.output.text is not None:
        output["text"] = step.output.text
    if step.output.json is not None:
        output["json"] = step.output.json
    data: dict[str, Any] = {
        "id": step.step_id,
        "label": step.label,
        "tool": step.tool,
        "inputs": step.inputs,
        "output": output,
        "selected": step.selected,
        "parents": list(step.parents),
    }
    if step.score is not None:
        data["score"] = step.score
    if step.group is not None:
        data["group"] = step.group
    return data


def artifact_to_dict(artifact: Artifact) -> dict[str, Any]:
    data: dict[str, Any] = {"type": artifact.artifact_type, "meta": artifact.meta}
    if artifact.path is not None:
        data["path"] = artifact.path
    if artifact.data_ref is not None:
        data["dataRef"] = artifact.data_ref
    if artifact.sha256 is not None:
        data["sha256"] = artifact.sha256
    return data


def run_from_dict(data: Any) -> Run:
    """
    Rebuild a Run from its envelope.

    Raises:
        ValidationFailure: If a required field is missing or mistyped
    """
    if not isinstance(data, Mapping):
        raise ValidationFailure("Run envelope must be a JSON object")
    try:
        intent = data["intent"]
        server = data["server"]
        summary = data["summary"]
        metrics = data["metrics"]
        return Run(
            run_id=str(data["runId"]),
            intent_name=intent["name"],
            mode=Topology(intent["mode"]),
            server=ServerSpec(
                name=server["name"],
                command=server["command"],
                args=tuple(server.get("args", [])),
            ),
            steps=tuple(_step_from_dict(s) for s in data["steps"]),
            artifacts=tuple(_artifact_from_dict(a) for a in data["artifacts"]),
            summary=RunSummary(
                decision=summary["decision"],
                rationale=summary.get("rationale", ""),
                notes=tuple(summary.get("notes", [])),
            ),
            metrics=RunMetrics(
                duration_ms=int(metrics["durationMs"]),
                branches_tried=int(metrics["branchesTried"]),
                tokens=int(metrics["tokens"]),
            ),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationFailure(f"Malformed run envelope: {e!r}", [str(e)]) from e


def _step_from_dict(data: Mapping[str, Any]) -> Step:
    output = data.get("output", {})
    return Step(
        step_id=int(data["id"]),
        label=data["label"],
        tool=data["tool"],
        inputs=dict(data.get("inputs", {})),
        output=StepOutput(text=output.get("text"), json=output.get("json")),
        score=data.get("score"),
        selected=bool(data.get("selected", False)),
        group=data.get("group"),
        parents=tuple(data.get("parents", [])),
    )


def _artifact_from_dict(data: Mapping[str, Any]) -> Artifact:
    return Artifact(
        artifact_type=data["type"],
        path=data.get("path"),
        data_ref=data.get("dataRef"),
        sha256=data.get("sha256"),
        meta=dict(data.get("meta", {})),
    )
