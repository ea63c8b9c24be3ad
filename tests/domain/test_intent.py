"""Tests for intent parsing."""

import json

import pytest

from intentflow.domain.exceptions import ConfigError
from intentflow.domain.intent import (
    expand_workspace,
    load_intent,
    parse_budgets,
    parse_intent,
    parse_server,
)
from intentflow.domain.models import Budgets, ServerSpec, TieBreak, Topology


class TestParseIntent:
    """Tests for parse_intent()."""

    def test_minimal_chain(self):
        intent = parse_intent({"name": "hello", "call": {"tool": "echo", "params": {"message": "hi"}}})
        assert intent.name == "hello"
        assert intent.topology == Topology.CHAIN
        assert intent.tie_break == TieBreak.LOWEST_ID
        assert len(intent.calls) == 1
        assert intent.calls[0].params == {"message": "hi"}
        assert intent.server == ServerSpec()
        assert intent.budgets == Budgets()

    def test_default_name(self):
        intent = parse_intent({"call": {"tool": "echo"}}, default_name="from-file")
        assert intent.name == "from-file"

    def test_call_and_calls_conflict(self):
        with pytest.raises(ConfigError, match="either 'call' or 'calls'"):
            parse_intent({"call": {"tool": "a"}, "calls": [{"tool": "b"}]})

    def test_missing_calls(self):
        with pytest.raises(ConfigError, match="needs 'call' or 'calls'"):
            parse_intent({"name": "empty"})

    def test_missing_tool(self):
        with pytest.raises(ConfigError, match="missing 'tool'"):
            parse_intent({"calls": [{"params": {}}]})

    def test_invalid_topology(self):
        with pytest.raises(ConfigError, match="Invalid topology 'loop'"):
            parse_intent({"topology": "loop", "call": {"tool": "a"}})

    def test_duplicate_ids(self):
        with pytest.raises(ConfigError, match="duplicate call ids"):
            parse_intent(
                {
                    "topology": "graph",
                    "calls": [{"id": "a", "tool": "x"}, {"id": "a", "tool": "y"}],
                }
            )

    def test_graph_fields(self):
        intent = parse_intent(
            {
                "topology": "graph",
                "calls": [
                    {"id": "a", "tool": "x"},
                    {"id": "b", "tool": "y", "after": "a", "evaluate": True},
                ],
            }
        )
        assert intent.calls[1].after == ("a",)
        assert intent.calls[1].evaluate is True
        assert intent.calls[1].merge is False

    def test_orchestrator_needs_children(self):
        with pytest.raises(ConfigError, match="needs 'children'"):
            parse_intent({"name": "boss", "topology": "orchestrator"})

    def test_children_inherit_server(self):
        intent = parse_intent(
            {
                "name": "boss",
                "topology": "orchestrator",
                "server": {"name": "S", "command": "srv", "args": []},
                "children": [
                    {"call": {"tool": "a"}},
                    {"call": {"tool": "b"}, "server": {"command": "other"}},
                ],
            }
        )
        assert intent.children[0].server.command == "srv"
        assert intent.children[0].name == "boss.child0"
        assert intent.children[1].server.command == "other"

    def test_out_must_be_string(self):
        with pytest.raises(ConfigError, match="'out' must be a string"):
            parse_intent({"call": {"tool": "a"}, "out": 5})

    def test_list_tools_flag(self):
        assert parse_intent({"call": {"tool": "a"}, "listTools": True}).list_tools is True
        assert parse_intent({"call": {"tool": "a"}}).list_tools is False
        with pytest.raises(ConfigError, match="'listTools' must be a boolean"):
            parse_intent({"call": {"tool": "a"}, "listTools": "yes"})

    def test_non_object(self):
        with pytest.raises(ConfigError, match="must be a JSON object"):
            parse_intent(["not", "an", "object"])


class TestParseBudgets:
    """Tests for parse_budgets()."""

    def test_all_keys(self):
        budgets = parse_budgets(
            {"maxSteps": 10, "branchFactor": 4, "depth": 2, "maxIterations": 6, "scoreThreshold": 0.7}
        )
        assert budgets == Budgets(
            max_steps=10, branch_factor=4, depth=2, max_iterations=6, score_threshold=0.7
        )

    @pytest.mark.parametrize("value", [0, -1, 1.5, True, "3"])
    def test_invalid_positive_int(self, value):
        with pytest.raises(ConfigError, match="budget 'depth' must be a positive integer"):
            parse_budgets({"depth": value})

    @pytest.mark.parametrize("value", [-0.1, 1.5, "high"])
    def test_invalid_threshold(self, value):
        with pytest.raises(ConfigError, match="scoreThreshold"):
            parse_budgets({"scoreThreshold": value})


class TestServer:
    """Tests for parse_server() and ${workspaceFolder} expansion."""

    def test_workspace_folder_expanded(self, tmp_path):
        server = parse_server(
            {"command": "node", "args": ["${workspaceFolder}/server.js"]}, cwd=tmp_path
        )
        assert server.args == (f"{tmp_path}/server.js",)

    def test_plain_value_untouched(self):
        assert expand_workspace("--stdio") == "--stdio"

    def test_args_must_be_strings(self):
        with pytest.raises(ConfigError, match="list of strings"):
            parse_server({"command": "x", "args": [1]})


class TestLoadIntent:
    """Tests for load_intent()."""

    def test_name_from_filename(self, tmp_path):
        path = tmp_path / "fetch-docs.intent.json"
        path.write_text(json.dumps({"call": {"tool": "echo"}}))
        assert load_intent(path).name == "fetch-docs"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_intent(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError, match="Invalid JSON"):
            load_intent(path)
