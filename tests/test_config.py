"""Tests for settings resolution."""

import json

import pytest

from intentflow.config import load_settings, with_overrides
from intentflow.domain.exceptions import ConfigError


class TestLoadSettings:
    """Tests for load_settings()."""

    def test_defaults(self, tmp_path):
        settings = load_settings(root=tmp_path, environ={})
        root = tmp_path.resolve()
        assert settings.root == root
        assert settings.queue_dir == root / "intents" / "queue"
        assert settings.archive_dir == root / "intents" / "queue" / "archive"
        assert settings.out_dir == root / "out"
        assert settings.trigger_history_file == root / "state" / "triggers" / "history.jsonl"
        assert settings.gateway_timeout == 60.0
        assert settings.launcher_command == ()
        assert settings.log_file is None

    def test_precedence(self, tmp_path):
        (tmp_path / "intentflow.json").write_text(
            json.dumps({"gateway_timeout": 10, "retry_attempts": 5, "depth_ceiling": 4})
        )
        settings = load_settings(
            root=tmp_path,
            environ={"INTENTFLOW_RETRY_ATTEMPTS": "7", "INTENTFLOW_DEPTH_CEILING": "6"},
            depth_ceiling=2,
            poll_interval=None,
        )
        assert settings.gateway_timeout == 10.0
        assert settings.retry_attempts == 7
        assert settings.depth_ceiling == 2
        assert settings.poll_interval == 0.5

    def test_explicit_file_and_relative_paths(self, tmp_path):
        path = tmp_path / "custom.json"
        path.write_text(json.dumps({"docs_dir": "site/docs", "log_file": "logs/run.log"}))
        settings = load_settings(path, root=tmp_path, environ={})
        assert settings.docs_dir == tmp_path.resolve() / "site" / "docs"
        assert settings.log_file == tmp_path.resolve() / "logs" / "run.log"

    def test_root_from_environment(self, tmp_path):
        settings = load_settings(environ={"INTENTFLOW_ROOT": str(tmp_path)})
        assert settings.root == tmp_path.resolve()

    def test_launcher_command_forms(self, tmp_path):
        from_env = load_settings(
            root=tmp_path, environ={"INTENTFLOW_LAUNCHER_COMMAND": "python -m intentflow run"}
        )
        assert from_env.launcher_command == ("python", "-m", "intentflow", "run")
        from_override = load_settings(root=tmp_path, environ={}, launcher_command=["a", "b"])
        assert from_override.launcher_command == ("a", "b")

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_settings(tmp_path / "absent.json", root=tmp_path, environ={})

    def test_invalid_json(self, tmp_path):
        (tmp_path / "intentflow.json").write_text("{not json")
        with pytest.raises(ConfigError, match="Invalid JSON"):
            load_settings(root=tmp_path, environ={})

    def test_non_object_file(self, tmp_path):
        (tmp_path / "intentflow.json").write_text("[1, 2]")
        with pytest.raises(ConfigError, match="Expected an object"):
            load_settings(root=tmp_path, environ={})

    def test_unknown_key(self, tmp_path):
        (tmp_path / "intentflow.json").write_text(json.dumps({"colour": "blue"}))
        with pytest.raises(ConfigError, match="Unknown setting"):
            load_settings(root=tmp_path, environ={})

    @pytest.mark.parametrize(
        ("key", "value"),
        [("INTENTFLOW_MAX_STEPS_CEILING", "many"), ("INTENTFLOW_GATEWAY_TIMEOUT", "soon")],
    )
    def test_bad_value(self, tmp_path, key, value):
        with pytest.raises(ConfigError, match="Invalid value"):
            load_settings(root=tmp_path, environ={key: value})

    def test_with_overrides(self, tmp_path):
        settings = load_settings(root=tmp_path, environ={})
        changed = with_overrides(settings, gateway_timeout=5.0, retry_attempts=None)
        assert changed.gateway_timeout == 5.0
        assert changed.retry_attempts == settings.retry_attempts
