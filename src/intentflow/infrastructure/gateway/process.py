"""
Blocking external process invocation.

One process at a time, blocking until exit. A hard timeout kills the child;
callers decide whether that is a ServerUnavailable or a logged failure.
"""

import logging
import subprocess
import time
from collections.abc import Mapping, Sequence
from pathlib import Path

from intentflow.domain.models import ProcessResult

logger = logging.getLogger(__name__)


def run_process(
    command: Sequence[str],
    timeout: float | None = None,
    input_text: str | None = None,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> ProcessResult:
    """
    Run a command to completion and capture its output.

    Args:
        command: Executable followed by its arguments
        timeout: Seconds before the child is killed (None = wait forever)
        input_text: Text written to the child's stdin
        cwd: Working directory for the child
        env: Environment for the child (None = inherit)

    Returns:
        ProcessResult; exit_code is None when the child timed out or could
        not be started
    """
    started = time.monotonic()
    logger.debug("Running: %s", " ".join(command))
    try:
        result = subprocess.run(
            list(command),
            input=input_text,
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=cwd,
            env=dict(env) if env is not None else None,
        )
    except subprocess.TimeoutExpired as e:
        logger.error("Process timed out after %ss: %s", timeout, command[0])
        return ProcessResult(
            exit_code=None,
            stdout=_decode(e.stdout),
            stderr=_decode(e.stderr) + f"\nTimed out after {timeout}s",
            duration_ms=_elapsed_ms(started),
            timed_out=True,
        )
    except OSError as e:
        logger.error("Could not start %s: %s", command[0], e)
        return ProcessResult(
            exit_code=None,
            stdout="",
            stderr=f"Could not start {command[0]}: {e}",
            duration_ms=_elapsed_ms(started),
        )

    return ProcessResult(
        exit_code=result.returncode,
        stdout=result.stdout,
        stderr=result.stderr,
        duration_ms=_elapsed_ms(started),
    )


def _decode(raw: str | bytes | None) -> str:
    # TimeoutExpired carries bytes even when text=True
    if raw is None:
        return ""
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return raw


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
