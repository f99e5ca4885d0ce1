"""Agent-kind adapters that translate CLI stream protocols into canonical events."""

from __future__ import annotations

from collections.abc import Callable

from duet.adapters.base import (
    Adapter,
    AdapterConfig,
    CallIdGenerator,
    EmitFn,
    InitFn,
    LineReader,
    pump,
)
from duet.adapters.claude import ClaudeAdapter, classify_claude_line
from duet.adapters.codex import CodexAdapter, classify_codex_line
from duet.adapters.options import AdapterOptions, ClaudeOptions, CLIKind, CodexOptions

AdapterFactory = Callable[
    [CLIKind, AdapterConfig, EmitFn, InitFn, CallIdGenerator],
    Adapter,
]


def create_adapter(
    cli_kind: CLIKind,
    config: AdapterConfig,
    emit: EmitFn,
    on_init: InitFn,
    call_ids: CallIdGenerator,
) -> Adapter:
    """Build the adapter for *cli_kind* (anything but ``codex`` is claude)."""
    if cli_kind == "codex":
        return CodexAdapter(config, emit, on_init, call_ids)
    return ClaudeAdapter(config, emit, on_init, call_ids)


__all__ = [
    "Adapter",
    "AdapterConfig",
    "AdapterFactory",
    "AdapterOptions",
    "CLIKind",
    "CallIdGenerator",
    "ClaudeAdapter",
    "ClaudeOptions",
    "CodexAdapter",
    "CodexOptions",
    "EmitFn",
    "InitFn",
    "LineReader",
    "classify_claude_line",
    "classify_codex_line",
    "create_adapter",
    "pump",
]
