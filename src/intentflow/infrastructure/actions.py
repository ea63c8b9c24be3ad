"""
Bounded, idempotent evolution actions over the documentation tree.

Every annotation is guarded by a marker, so applying an action twice leaves
the file unchanged, and every action touches at most `max_files` files.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from intentflow.domain.models import Trigger
from intentflow.files import atomic_write_text
from intentflow.infrastructure.documents import markdown_files, modified_at

logger = logging.getLogger(__name__)

FRESHNESS_MARKER = "Content Freshness Note"
FRESHNESS_NOTE = (
    "\n\n> **Content Freshness Note**\n"
    "> This document was last updated more than 30 days ago. "
    "Please review for accuracy and relevance.\n"
)

SUGGESTIONS_MARKER = "Improvement Suggestions"
SUGGESTIONS = (
    "\n\n## Improvement Suggestions\n\n"
    "- [ ] Review and update outdated information\n"
    "- [ ] Add more practical examples\n"
    "- [ ] Improve cross-references to related content\n"
    "- [ ] Enhance visual elements and formatting\n"
)

PROMOTION_MARKER = "Popular Content"
PROMOTION = (
    "> **Popular Content**\n"
    "> This document contains valuable insights that may be underutilized. "
    "Consider sharing with your team!"
)

COVERAGE_REPORT = """# Documentation Coverage Report

Generated by the evolution trigger system on {date}.

## Current Coverage

- [ ] API documentation completeness
- [ ] Tutorial coverage
- [ ] Troubleshooting guides
- [ ] Best practices documentation

## Recommendations

Focus on filling coverage gaps in the next development cycle.
"""

EXPERIMENT = """# Interactive Documentation Experiments

## Experiment: Self-Executing Examples

This section explores ways to make documentation more interactive.

### Planned Experiments

- [ ] Click-to-run code examples
- [ ] Interactive decision trees
- [ ] Real-time feedback forms
- [ ] Collaborative annotation system

## Current Status

Planning phase - experiments to begin in next iteration.
"""


class DocumentActions:
    """The action set the default evolution rules refer to by name."""

    def __init__(
        self,
        docs_dir: Path,
        state_dir: Path,
        clock: Callable[[], datetime],
        max_files: int = 20,
        on_experiment: Callable[[], Path | None] | None = None,
    ):
        """
        Args:
            docs_dir: Root of the documentation tree
            state_dir: Where generated reports go
            clock: Source of "now"
            max_files: Upper bound on files one action may modify
            on_experiment: Extra step for the innovation action (e.g. queue
                a daily exploration intent); returns the file it wrote
        """
        self._docs_dir = Path(docs_dir)
        self._state_dir = Path(state_dir)
        self._clock = clock
        self._max_files = max_files
        self._on_experiment = on_experiment

    def handlers(self) -> dict[str, Callable[[Trigger], dict[str, Any]]]:
        return {
            "review_old_documents": self.review_old_documents,
            "enhance_poor_documents": self.enhance_poor_documents,
            "promote_least_accessed": self.promote_least_accessed,
            "improve_system_health": self.improve_system_health,
            "experiment_new_formats": self.experiment_new_formats,
        }

    def review_old_documents(self, trigger: Trigger) -> dict[str, Any]:
        cutoff = self._clock() - timedelta(days=30)
        stale = [p for p in markdown_files(self._docs_dir) if modified_at(p) < cutoff]
        modified = [p for p in stale[: self._max_files] if self._append_once(p, FRESHNESS_MARKER, FRESHNESS_NOTE)]
        return {"modified": [self._relative(p) for p in modified]}

    def enhance_poor_documents(self, trigger: Trigger) -> dict[str, Any]:
        modified = [
            p
            for p in self._targets(trigger)
            if self._append_once(p, SUGGESTIONS_MARKER, SUGGESTIONS)
        ]
        return {"modified": [self._relative(p) for p in modified]}

    def promote_least_accessed(self, trigger: Trigger) -> dict[str, Any]:
        modified = []
        for path in self._targets(trigger):
            content = path.read_text(encoding="utf-8")
            if PROMOTION_MARKER in content:
                continue
            lines = content.split("\n")
            heading = next((i for i, line in enumerate(lines) if line.startswith("#")), None)
            if heading is None:
                continue
            lines[heading + 1 : heading + 1] = ["", PROMOTION]
            atomic_write_text(path, "\n".join(lines))
            modified.append(path)
        return {"modified": [self._relative(p) for p in modified]}

    def improve_system_health(self, trigger: Trigger) -> dict[str, Any]:
        written = []
        for area in trigger.targets:
            if area == "documentationCoverage":
                report = self._state_dir / "reports" / "coverage-report.md"
                atomic_write_text(report, COVERAGE_REPORT.format(date=self._clock().date().isoformat()))
                written.append(str(report))
            else:
                logger.info("Health improvement scheduled for %s", area)
        return {"written": written}

    def experiment_new_formats(self, trigger: Trigger) -> dict[str, Any]:
        written = []
        experiment = self._docs_dir / "experiments" / "interactive-examples.md"
        if not experiment.exists():
            atomic_write_text(experiment, EXPERIMENT)
            written.append(str(experiment))
        if self._on_experiment is not None:
            queued = self._on_experiment()
            if queued is not None:
                written.append(str(queued))
        return {"written": written}

    def _targets(self, trigger: Trigger) -> list[Path]:
        """Existing target files inside the docs tree, capped at max_files."""
        root = self._docs_dir.resolve()
        paths = []
        for target in trigger.targets:
            path = (self._docs_dir / target).resolve()
            if not path.is_relative_to(root):
                logger.warning("Ignoring target outside docs tree: %s", target)
                continue
            if path.is_file():
                paths.append(path)
        return paths[: self._max_files]

    def _append_once(self, path: Path, marker: str, text: str) -> bool:
        content = path.read_text(encoding="utf-8")
        if marker in content:
            return False
        atomic_write_text(path, content.rstrip("\n") + text)
        return True

    def _relative(self, path: Path) -> str:
        try:
            return path.resolve().relative_to(self._docs_dir.resolve()).as_posix()
        except ValueError:
            return str(path)
