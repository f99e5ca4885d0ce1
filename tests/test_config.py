"""Tests for duet config models and parser."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import pytest
import yaml
from pydantic import ValidationError

from duet.adapters.options import ClaudeOptions, CodexOptions
from duet.config.models import DuetConfig
from duet.config.parser import ConfigError, find_config, load_config

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_yaml(path: Path, data: dict[str, Any]) -> Path:
    """Write *data* as YAML and return the file path."""
    path.write_text(yaml.dump(data), encoding="utf-8")
    return path


# ===================================================================
# Model validation tests
# ===================================================================


class TestDefaults:
    def test_defaults_applied(self) -> None:
        cfg = DuetConfig()
        assert cfg.data_dir == Path.home() / ".duet" / "sessions"
        assert cfg.idle_timeout == 300.0
        assert cfg.sweep_interval == 60.0
        assert cfg.default_cli == "claude"
        assert cfg.log_level is None
        assert cfg.claude == ClaudeOptions()
        assert cfg.codex == CodexOptions()

    def test_adapter_defaults(self) -> None:
        cfg = DuetConfig()
        defaults = cfg.adapter_defaults()
        assert defaults["claude"] is cfg.claude
        assert defaults["codex"] is cfg.codex


class TestValidation:
    def test_paths_expanded(self) -> None:
        cfg = DuetConfig.model_validate({"data_dir": "~/sessions"})
        assert cfg.data_dir == Path.home() / "sessions"

    def test_log_level_case_insensitive(self) -> None:
        assert DuetConfig.model_validate({"log_level": "debug"}).log_level == "DEBUG"

    def test_bad_log_level(self) -> None:
        with pytest.raises(ValidationError):
            DuetConfig.model_validate({"log_level": "loud"})

    def test_unknown_cli_rejected(self) -> None:
        with pytest.raises(ValidationError):
            DuetConfig.model_validate({"default_cli": "gemini"})

    def test_sweep_interval_positive(self) -> None:
        with pytest.raises(ValidationError):
            DuetConfig.model_validate({"sweep_interval": 0})

    def test_idle_timeout_may_disable(self) -> None:
        assert DuetConfig.model_validate({"idle_timeout": 0}).idle_timeout == 0

    def test_default_cwd_must_be_directory(self, tmp_path: Path) -> None:
        afile = tmp_path / "file.txt"
        afile.write_text("x")
        with pytest.raises(ValidationError, match="not a directory"):
            DuetConfig.model_validate({"default_cwd": str(afile)})

    def test_unknown_key_rejected(self) -> None:
        with pytest.raises(ValidationError):
            DuetConfig.model_validate({"agents": {}})

    def test_adapter_sections(self) -> None:
        cfg = DuetConfig.model_validate({
            "claude": {"skip_permissions": False, "extra_args": ["--model", "opus"]},
            "codex": {"bypass_approvals": False},
        })
        assert cfg.claude.skip_permissions is False
        assert cfg.claude.extra_args == ["--model", "opus"]
        assert cfg.codex.bypass_approvals is False
        assert cfg.codex.skip_git_repo_check is True


# ===================================================================
# Parser tests
# ===================================================================


class TestLoadConfig:
    def test_loads_explicit_file(self, tmp_path: Path) -> None:
        path = _write_yaml(
            tmp_path / "duet.yaml",
            {"data_dir": str(tmp_path / "data"), "idle_timeout": 30},
        )
        cfg = load_config(path)
        assert cfg.data_dir == tmp_path / "data"
        assert cfg.idle_timeout == 30

    def test_explicit_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yaml")

    def test_no_file_uses_defaults(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        assert load_config() == DuetConfig()

    def test_discovers_cwd_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _write_yaml(tmp_path / "duet.yaml", {"default_cli": "codex"})
        monkeypatch.chdir(tmp_path)
        assert load_config().default_cli == "codex"

    def test_empty_file_is_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "duet.yaml"
        path.write_text("")
        assert load_config(path) == DuetConfig()

    def test_invalid_yaml_reports_position(self, tmp_path: Path) -> None:
        path = tmp_path / "duet.yaml"
        path.write_text("idle_timeout: [1, 2\n")
        with pytest.raises(ConfigError, match="Invalid YAML in duet.yaml"):
            load_config(path)

    def test_non_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "duet.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="Expected a YAML mapping"):
            load_config(path)

    def test_validation_errors_flattened(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path / "duet.yaml", {"bogus": 1, "sweep_interval": -1})
        with pytest.raises(ConfigError) as exc_info:
            load_config(path)
        message = str(exc_info.value)
        assert message.startswith("Config validation failed:")
        assert "bogus: Unknown setting" in message
        assert "sweep_interval" in message

    def test_nested_errors_use_dotted_keys(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path / "duet.yaml", {"codex": {"sandbox": "off"}})
        with pytest.raises(ConfigError, match="codex.sandbox: Unknown setting"):
            load_config(path)

    def test_find_config_prefers_explicit_path(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _write_yaml(tmp_path / "duet.yaml", {})
        other = _write_yaml(tmp_path / "other.yaml", {})
        monkeypatch.chdir(tmp_path)
        assert find_config(other) == other
        assert find_config() == tmp_path / "duet.yaml"

    def test_dotenv_loaded(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("DUET_TEST_TOKEN", raising=False)
        (tmp_path / ".env").write_text("DUET_TEST_TOKEN=secret\n")
        path = _write_yaml(tmp_path / "duet.yaml", {})
        load_config(path)
        assert os.environ.get("DUET_TEST_TOKEN") == "secret"
        monkeypatch.delenv("DUET_TEST_TOKEN", raising=False)
