"""
Out-of-process intent launcher used by the queue runner.

Each queued intent runs in its own ``intentflow run`` process, so a crash or
hang in one item cannot take the runner down with it.
"""

import sys
from collections.abc import Sequence
from pathlib import Path

from intentflow.domain.interfaces import IntentLauncherInterface
from intentflow.domain.models import ProcessResult
from intentflow.infrastructure.gateway.process import run_process

DEFAULT_COMMAND: tuple[str, ...] = (sys.executable, "-m", "intentflow", "run")


class SubprocessIntentLauncher(IntentLauncherInterface):
    """Runs ``<command> --config <intent> --out <result> [extra args]`` and blocks."""

    def __init__(
        self,
        command: Sequence[str] | None = None,
        extra_args: Sequence[str] = (),
        timeout: float | None = None,
        cwd: Path | None = None,
    ):
        """
        Args:
            command: Executor command line (default: this interpreter's intentflow)
            extra_args: Appended after --config/--out (e.g. --server overrides)
            timeout: Seconds before the executor process is killed
            cwd: Working directory for the executor process
        """
        self._command = tuple(command) if command else DEFAULT_COMMAND
        self._extra_args = tuple(extra_args)
        self._timeout = timeout
        self._cwd = cwd

    def launch(self, config_path: Path, out_path: Path) -> ProcessResult:
        command = [
            *self._command,
            "--config",
            str(config_path),
            "--out",
            str(out_path),
            *self._extra_args,
        ]
        return run_process(command, timeout=self._timeout, cwd=self._cwd)
