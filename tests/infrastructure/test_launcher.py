"""Tests for the subprocess intent launcher."""

import json
import sys

from intentflow.infrastructure.launcher import DEFAULT_COMMAND, SubprocessIntentLauncher

PRINT_ARGV = "import json, sys; print(json.dumps(sys.argv[1:]))"


class TestSubprocessIntentLauncher:
    def test_default_command_runs_this_interpreter(self):
        assert DEFAULT_COMMAND == (sys.executable, "-m", "intentflow", "run")

    def test_argument_order(self, tmp_path):
        launcher = SubprocessIntentLauncher(
            command=[sys.executable, "-c", PRINT_ARGV], extra_args=["--dry-run"]
        )
        result = launcher.launch(tmp_path / "a.json", tmp_path / "a.out.json")

        assert result.ok
        assert json.loads(result.stdout) == [
            "--config",
            str(tmp_path / "a.json"),
            "--out",
            str(tmp_path / "a.out.json"),
            "--dry-run",
        ]

    def test_nonzero_exit_is_reported(self, tmp_path):
        launcher = SubprocessIntentLauncher(command=[sys.executable, "-c", "import sys; sys.exit(1)"])
        result = launcher.launch(tmp_path / "a.json", tmp_path / "out.json")
        assert result.exit_code == 1
        assert not result.ok

    def test_timeout(self, tmp_path):
        launcher = SubprocessIntentLauncher(
            command=[sys.executable, "-c", "import time; time.sleep(5)"], timeout=0.3
        )
        result = launcher.launch(tmp_path / "a.json", tmp_path / "out.json")
        assert result.timed_out
