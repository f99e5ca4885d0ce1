"""Tests for session metadata models and the JSON file store."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from duet.adapters.options import CodexOptions
from duet.session import CreateOptions, MetaStore, SessionMeta

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _meta(session_id: str = "abc12345", **overrides: object) -> SessionMeta:
    data: dict[str, object] = {
        "id": session_id,
        "title": "Explain the build",
        "createdAt": 1_700_000_000_000,
        "cwd": "/tmp/work",
        "cliKind": "claude",
        "cliSessionId": "sess-abc",
        "messages": [{"role": "user", "text": "Explain the build"}],
    }
    data.update(overrides)
    return SessionMeta.model_validate(data)


# ===================================================================
# Models
# ===================================================================


class TestSessionMeta:
    def test_dump_uses_camel_case(self) -> None:
        dumped = json.loads(_meta().dump())
        assert set(dumped) == {
            "id",
            "title",
            "createdAt",
            "cwd",
            "cliKind",
            "cliSessionId",
            "messages",
        }

    def test_legacy_cli_key(self) -> None:
        raw = {"id": "old", "createdAt": 1, "cwd": "/", "cli": "codex"}
        assert SessionMeta.model_validate(raw).cli_kind == "codex"

    def test_missing_kind_defaults_to_claude(self) -> None:
        raw = {"id": "old", "createdAt": 1, "cwd": "/"}
        meta = SessionMeta.model_validate(raw)
        assert meta.cli_kind == "claude"
        assert meta.title == ""
        assert meta.messages == []
        assert meta.cli_session_id is None

    def test_missing_required_field(self) -> None:
        with pytest.raises(ValidationError):
            SessionMeta.model_validate({"id": "x", "cwd": "/"})


class TestCreateOptions:
    def test_unknown_kind_becomes_claude(self) -> None:
        assert CreateOptions(cwd="/", cli_kind="gemini").cli_kind == "claude"  # type: ignore[arg-type]

    def test_codex_kind(self) -> None:
        assert CreateOptions(cwd="/", cli_kind="codex").cli_kind == "codex"

    def test_adapter_options_discriminated(self) -> None:
        opts = CreateOptions.model_validate(
            {"cwd": "/", "adapter_options": {"kind": "codex", "extra_args": ["-m", "o3"]}}
        )
        assert isinstance(opts.adapter_options, CodexOptions)
        assert opts.adapter_options.extra_args == ["-m", "o3"]


# ===================================================================
# Store
# ===================================================================


class TestMetaStore:
    def test_save_creates_directory(self, tmp_path: Path) -> None:
        store = MetaStore(tmp_path / "nested" / "sessions")
        path = store.save(_meta())
        assert path == tmp_path / "nested" / "sessions" / "abc12345.json"
        assert path.is_file()

    def test_save_leaves_no_temp_file(self, tmp_path: Path) -> None:
        store = MetaStore(tmp_path)
        store.save(_meta())
        store.save(_meta(title="Renamed"))
        assert [p.name for p in tmp_path.iterdir()] == ["abc12345.json"]

    def test_load_all_round_trip(self, tmp_path: Path) -> None:
        store = MetaStore(tmp_path)
        store.save(_meta("aaaa0001"))
        store.save(_meta("aaaa0002", cliKind="codex"))
        loaded = {m.id: m for m in store.load_all()}
        assert set(loaded) == {"aaaa0001", "aaaa0002"}
        assert loaded["aaaa0002"].cli_kind == "codex"
        assert loaded["aaaa0001"] == _meta("aaaa0001")

    def test_missing_directory_loads_nothing(self, tmp_path: Path) -> None:
        assert MetaStore(tmp_path / "absent").load_all() == []

    def test_bad_files_skipped(self, tmp_path: Path) -> None:
        store = MetaStore(tmp_path)
        store.save(_meta())
        (tmp_path / "broken.json").write_text("{not json")
        (tmp_path / "wrong.json").write_text(json.dumps({"id": "x"}))
        (tmp_path / "binary.json").write_bytes(b"\xff\xfe\x00")
        (tmp_path / "notes.txt").write_text("ignored")
        assert [m.id for m in store.load_all()] == ["abc12345"]

    def test_delete(self, tmp_path: Path) -> None:
        store = MetaStore(tmp_path)
        store.save(_meta())
        store.delete("abc12345")
        assert not store.path_for("abc12345").exists()
        store.delete("abc12345")
