"""Tests for the intentflow command line."""

import json
import sys

import pytest
from click.testing import CliRunner

from intentflow.cli import EXIT_CONFIG, EXIT_FAILURE, cli

ECHO_INTENT = {"call": {"tool": "echo", "params": {"message": "hi"}}}


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def intent_file(tmp_path):
    path = tmp_path / "demo.json"
    path.write_text(json.dumps(ECHO_INTENT))
    return path


def invoke(runner, root, *args):
    return runner.invoke(cli, ["--root", str(root), *args], obj={})


class TestRunCommand:
    def test_dry_run_writes_envelope(self, runner, tmp_path, intent_file):
        result = invoke(runner, tmp_path, "run", "--config", str(intent_file), "--dry-run")

        assert result.exit_code == 0, result.output
        envelope = json.loads((tmp_path / "out" / "demo.result.json").read_text())
        assert envelope["steps"][0]["output"]["text"] == "Echo: hi"
        assert envelope["summary"]["decision"]

    def test_explicit_out(self, runner, tmp_path, intent_file):
        out = tmp_path / "elsewhere" / "run.json"
        result = invoke(runner, tmp_path, "run", "--config", str(intent_file), "--out", str(out), "--dry-run")
        assert result.exit_code == 0, result.output
        assert out.exists()

    def test_missing_intent_is_config_error(self, runner, tmp_path):
        result = invoke(runner, tmp_path, "run", "--config", str(tmp_path / "absent.json"))
        assert result.exit_code == EXIT_CONFIG

    def test_invalid_intent_is_config_error(self, runner, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"calls": "nope"}))
        result = invoke(runner, tmp_path, "run", "--config", str(path), "--dry-run")
        assert result.exit_code == EXIT_CONFIG
        assert not (tmp_path / "out" / "bad.result.json").exists()

    def test_server_failure_writes_partial_envelope(self, runner, tmp_path, intent_file):
        result = invoke(
            runner,
            tmp_path,
            "run",
            "--config",
            str(intent_file),
            "--server",
            sys.executable,
            "--serverArgs=-c 'import sys; sys.exit(3)'",
        )
        assert result.exit_code == EXIT_FAILURE
        envelope = json.loads((tmp_path / "out" / "demo.result.json").read_text())
        assert envelope["steps"] == []
        assert envelope["summary"]["decision"].startswith("aborted")


class TestValidateCommand:
    def test_intent_and_envelope(self, runner, tmp_path, intent_file):
        invoke(runner, tmp_path, "run", "--config", str(intent_file), "--dry-run")
        envelope = tmp_path / "out" / "demo.result.json"

        result = invoke(runner, tmp_path, "validate", str(intent_file), str(envelope))

        assert result.exit_code == 0, result.output
        assert result.output.count("✓") == 2

    def test_failures_exit_nonzero(self, runner, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("{nope")
        result = invoke(runner, tmp_path, "validate", str(bad))
        assert result.exit_code == EXIT_FAILURE


class TestGenerateIntentCommand:
    def test_queues_intent(self, runner, tmp_path):
        result = invoke(runner, tmp_path, "generate-intent", "docs search", "search", "2")
        assert result.exit_code == 0, result.output
        document = json.loads((tmp_path / "intents" / "queue" / "intent.search.json").read_text())
        assert len(document["calls"]) == 2

    def test_unsafe_name(self, runner, tmp_path):
        result = invoke(runner, tmp_path, "generate-intent", "docs", "../escape")
        assert result.exit_code == EXIT_CONFIG


TOOLS_SERVER = """
import json, sys
for line in sys.stdin:
    message = json.loads(line)
    if message.get("method") == "tools/list":
        tools = [{"name": "add", "description": "Adds two numbers"}]
        print(json.dumps({"jsonrpc": "2.0", "id": message["id"], "result": {"tools": tools}}))
"""


class TestToolsExportCommand:
    def test_dry_run_from_config(self, runner, tmp_path, intent_file):
        result = invoke(runner, tmp_path, "tools", "export", "--config", str(intent_file), "--dry-run")

        assert result.exit_code == 0, result.output
        manifest = json.loads((tmp_path / "out" / "tools" / "Everything" / "tools.json").read_text())
        assert manifest["server"]["name"] == "Everything"
        assert [t["name"] for t in manifest["tools"]] == ["echo"]
        assert manifest["timestampUtc"]

    def test_lists_tools_from_server_process(self, runner, tmp_path):
        intent = {
            "server": {"name": "Py Tools", "command": sys.executable, "args": ["-c", TOOLS_SERVER]},
            "call": {"tool": "add"},
        }
        path = tmp_path / "add.json"
        path.write_text(json.dumps(intent))
        out_dir = tmp_path / "manifests"

        result = invoke(runner, tmp_path, "tools", "export", "--config", str(path), "--out-dir", str(out_dir))

        assert result.exit_code == 0, result.output
        manifest = json.loads((out_dir / "Py_Tools" / "tools.json").read_text())
        assert manifest["tools"] == [{"name": "add", "description": "Adds two numbers"}]
        assert manifest["server"]["args"] == ["-c", TOOLS_SERVER]

    def test_all_intents_continues_past_failures(self, runner, tmp_path, intent_file):
        intents = tmp_path / "intents"
        intents.mkdir()
        (intents / "good.json").write_text(intent_file.read_text())
        (intents / "broken.json").write_text("{nope")

        result = invoke(runner, tmp_path, "tools", "export", "--all-intents", str(intents), "--dry-run")

        assert result.exit_code == EXIT_FAILURE
        assert "broken.json" in result.output
        assert (tmp_path / "out" / "tools" / "Everything" / "tools.json").exists()

    def test_needs_exactly_one_source(self, runner, tmp_path, intent_file):
        assert invoke(runner, tmp_path, "tools", "export").exit_code == EXIT_CONFIG
        result = invoke(
            runner, tmp_path, "tools", "export", "--config", str(intent_file), "--all-intents", str(tmp_path)
        )
        assert result.exit_code == EXIT_CONFIG

    def test_server_failure(self, runner, tmp_path):
        path = tmp_path / "dead.json"
        path.write_text(json.dumps({"server": {"command": sys.executable, "args": ["-c", "raise SystemExit(3)"]}, "call": {"tool": "a"}}))
        result = invoke(runner, tmp_path, "tools", "export", "--config", str(path))
        assert result.exit_code == EXIT_FAILURE


class TestQueueCommand:
    def test_once_with_empty_queue(self, runner, tmp_path):
        result = invoke(runner, tmp_path, "queue", "once")
        assert result.exit_code == 0, result.output


class TestCycleCommands:
    @pytest.fixture
    def docs(self, tmp_path, write_doc):
        write_doc(tmp_path / "docs", "index.md", "# Index\n\nWelcome.", age_days=45)
        return tmp_path / "docs"

    def test_orchestrate(self, runner, tmp_path, docs):
        result = invoke(runner, tmp_path, "orchestrate", "--workflow-id", "cycle-1")
        assert result.exit_code == 0, result.output
        assert (tmp_path / "state" / "reports" / "cycle-1.json").exists()

    def test_orchestrate_without_docs_aborts(self, runner, tmp_path):
        result = invoke(runner, tmp_path, "orchestrate")
        assert result.exit_code == EXIT_FAILURE

    def test_evolve_evaluate_only(self, runner, tmp_path, docs):
        original = (docs / "index.md").read_text()
        result = invoke(runner, tmp_path, "evolve", "--evaluate-only", "--stats")
        assert result.exit_code == 0, result.output
        assert (tmp_path / "state" / "triggers" / "history.jsonl").exists()
        assert (docs / "index.md").read_text() == original

    def test_evolve_rejects_bad_state(self, runner, tmp_path):
        state = tmp_path / "state.json"
        state.write_text(json.dumps({"documentStats": {"totalDocuments": "many"}}))
        result = invoke(runner, tmp_path, "evolve", "--state", str(state))
        assert result.exit_code == EXIT_CONFIG


def test_bad_settings_exit_code(runner, tmp_path):
    (tmp_path / "intentflow.json").write_text(json.dumps({"colour": "blue"}))
    result = invoke(runner, tmp_path, "queue", "once")
    assert result.exit_code == EXIT_CONFIG
