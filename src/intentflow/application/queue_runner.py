"""
QueueRunner: serially executes intent files dropped into a queue directory.

Item lifecycle, each transition a single rename:

    queue/<name>.json -> queue/processing/<name>.json -> queue/archive/<name>.json.<ts>

An item is claimed before it is launched, so an item is never executed
twice; anything still in processing/ when a run starts was interrupted by a
crash and is archived without being re-executed.
"""

import json
import logging
import os
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from intentflow.domain.exceptions import ValidationFailure
from intentflow.domain.interfaces import IntentLauncherInterface
from intentflow.domain.models import ProcessResult, QueueItemResult, QueueItemStatus
from intentflow.files import atomic_write_text, unique_path
from intentflow.schemas import validate_run_envelope

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.2


@dataclass(frozen=True)
class QueueLayout:
    """Directories the runner owns."""

    queue_dir: Path
    out_dir: Path

    @property
    def processing_dir(self) -> Path:
        return self.queue_dir / "processing"

    @property
    def archive_dir(self) -> Path:
        return self.queue_dir / "archive"

    def ensure(self) -> None:
        for d in (self.queue_dir, self.processing_dir, self.archive_dir, self.out_dir):
            d.mkdir(parents=True, exist_ok=True)


def timestamp_suffix(now: datetime) -> str:
    """ISO-8601 UTC with ':' and '.' replaced, e.g. 2025-01-31T12-00-00-000Z."""
    now = now.astimezone(timezone.utc)
    return now.strftime("%Y-%m-%dT%H-%M-%S-") + f"{now.microsecond // 1000:03d}Z"


class Debouncer:
    """
    Timer-reset debounce: each trigger() restarts a single pending timer and
    only timer expiry invokes the callback.
    """

    def __init__(self, delay: float, callback: Callable[[], None]):
        self._delay = delay
        self._callback = callback
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()

    def trigger(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self._delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
        self._callback()


class QueueRunner:
    """
    Processes queued intents strictly one at a time.

    Failures of one item are logged and archived; they never stop the batch.
    """

    def __init__(
        self,
        layout: QueueLayout,
        launcher: IntentLauncherInterface,
        debounce_delay: float = DEFAULT_DEBOUNCE_SECONDS,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Args:
            layout: Queue, processing, archive and output directories
            launcher: Runs one intent file out-of-process
            debounce_delay: Seconds of quiet before watch() triggers a run
            clock: Source of "now" for timestamps (default: UTC wall clock)
        """
        self._layout = layout
        self._launcher = launcher
        self._debounce_delay = debounce_delay
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()

    @property
    def layout(self) -> QueueLayout:
        return self._layout

    def pending(self) -> list[Path]:
        """Queued intent files in lexicographic order."""
        if not self._layout.queue_dir.exists():
            return []
        return sorted(
            p
            for p in self._layout.queue_dir.iterdir()
            if p.is_file() and p.suffix.lower() == ".json"
        )

    def run_once(self) -> list[QueueItemResult]:
        """Process every currently queued item. Never overlaps with itself."""
        with self._lock:
            self._layout.ensure()
            results = [
                self._recover(p)
                for p in sorted(self._layout.processing_dir.iterdir())
                if p.is_file()
            ]
            for path in self.pending():
                result = self._process(path)
                if result is not None:
                    results.append(result)
            return results

    def watch(
        self,
        stop_event: threading.Event | None = None,
        poll_interval: float = 0.5,
        on_results: Callable[[list[QueueItemResult]], None] | None = None,
    ) -> None:
        """
        Run once, then poll the queue until `stop_event` is set.

        Every observed change restarts the debounce timer; expiry runs
        run_once() on the timer thread.
        """
        stop_event = stop_event or threading.Event()
        report = on_results or (lambda results: None)

        def run() -> None:
            try:
                report(self.run_once())
            except OSError:
                logger.exception("Queue run failed")

        run()
        debouncer = Debouncer(self._debounce_delay, run)
        snapshot = self._snapshot()
        logger.info("Watching %s for intents (*.json)", self._layout.queue_dir)
        try:
            while not stop_event.wait(poll_interval):
                current = self._snapshot()
                if current != snapshot:
                    snapshot = current
                    debouncer.trigger()
        finally:
            debouncer.cancel()

    def _snapshot(self) -> frozenset[tuple[str, int, int]]:
        entries = set()
        for p in self.pending():
            try:
                stat = p.stat()
            except FileNotFoundError:
                continue
            entries.add((p.name, stat.st_mtime_ns, stat.st_size))
        return frozenset(entries)

    def _process(self, path: Path) -> QueueItemResult | None:
        name = path.name
        claimed = unique_path(self._layout.processing_dir / name)
        try:
            os.rename(path, claimed)
        except FileNotFoundError:
            logger.info("Skipping %s: claimed elsewhere", name)
            return None

        logger.info("Processing intent: %s", name)
        result_path = self._layout.out_dir / f"{path.stem}.result.json"
        result_path.unlink(missing_ok=True)
        process = self._launcher.launch(claimed, result_path)

        error = None
        produced = result_path.exists()
        if produced:
            error = self._check_envelope(result_path)
        elif process.ok:
            error = "no run envelope produced"
        elif process.timed_out:
            error = "timed out"
        else:
            error = f"exit code {process.exit_code}"

        ts = timestamp_suffix(self._clock())
        log_path = unique_path(self._layout.out_dir / f"{name}.{ts}.log.txt")
        atomic_write_text(log_path, format_log(name, process, error))
        archive_path = unique_path(self._layout.archive_dir / f"{name}.{ts}")
        os.rename(claimed, archive_path)

        ok = process.ok and error is None
        status_text = "OK" if ok else f"ERR({process.exit_code})"
        logger.info("%s -> %s; log: %s", name, status_text, log_path.name)
        if error:
            logger.warning("%s: %s", name, error)
        return QueueItemResult(
            name=name,
            status=QueueItemStatus.ARCHIVED_OK if ok else QueueItemStatus.ARCHIVED_ERROR,
            exit_code=process.exit_code,
            log_path=str(log_path),
            archive_path=str(archive_path),
            result_path=str(result_path) if produced else None,
            error=error,
        )

    def _recover(self, claimed: Path) -> QueueItemResult:
        name = claimed.name
        logger.warning("Archiving interrupted item %s without re-running it", name)
        ts = timestamp_suffix(self._clock())
        log_path = unique_path(self._layout.out_dir / f"{name}.{ts}.log.txt")
        atomic_write_text(
            log_path,
            f"intent: {name}\nstatus: interrupted\n"
            "Found in processing/ at startup; archived without re-execution.\n",
        )
        archive_path = unique_path(self._layout.archive_dir / f"{name}.{ts}")
        os.rename(claimed, archive_path)
        return QueueItemResult(
            name=name,
            status=QueueItemStatus.ARCHIVED_ERROR,
            exit_code=None,
            log_path=str(log_path),
            archive_path=str(archive_path),
            error="interrupted",
        )

    def _check_envelope(self, result_path: Path) -> str | None:
        try:
            data = json.loads(result_path.read_text(encoding="utf-8"))
            validate_run_envelope(data)
        except json.JSONDecodeError as e:
            return f"invalid run envelope JSON: {e}"
        except ValidationFailure as e:
            return f"{e}: {'; '.join(e.errors)}"
        return None


def format_log(name: str, process: ProcessResult, error: str | None = None) -> str:
    lines = [
        f"intent: {name}",
        f"exitCode: {process.exit_code}",
        f"durationMs: {process.duration_ms}",
    ]
    if process.timed_out:
        lines.append("timedOut: true")
    if error:
        lines.append(f"error: {error}")
    return "\n".join(lines) + f"\n\n{process.stdout}\n{process.stderr}"
