"""Claude adapter — one persistent ``claude`` process per session.

The process is started in print mode with stream-json on both pipes, so
turns are written to stdin as JSON lines and the CLI keeps its context
between them.  ``--include-partial-messages`` makes it emit
``stream_event`` lines, which carry the token-level text deltas.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any

from duet.adapters.base import (
    AdapterConfig,
    CallIdGenerator,
    EmitFn,
    InitFn,
    LineReader,
    collect_tail,
    describe_exit,
    encode_arguments,
    kill_process,
    pump,
)
from duet.adapters.options import ClaudeOptions
from duet.events import (
    CanonicalEvent,
    FunctionCallItem,
    OutputItemAdded,
    OutputItemDone,
    OutputTextDelta,
    ReasoningItem,
    ResponseCompleted,
    ResponseCreated,
    ResponseFailed,
    ResponseInProgress,
)

logger = logging.getLogger(__name__)

PROGRAM = "claude"


# ------------------------------------------------------------------ #
# Line classification
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class Init:
    session_id: str | None


@dataclass(frozen=True)
class ThinkingStart:
    pass


@dataclass(frozen=True)
class ToolUseStart:
    name: str


@dataclass(frozen=True)
class ToolUse:
    name: str
    input: Any


@dataclass(frozen=True)
class AssistantToolUses:
    uses: tuple[ToolUse, ...]


@dataclass(frozen=True)
class ToolResult:
    pass


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class Result:
    pass


@dataclass(frozen=True)
class Unrecognized:
    reason: str


ClaudeLine = (
    Init
    | ThinkingStart
    | ToolUseStart
    | AssistantToolUses
    | ToolResult
    | TextDelta
    | Result
    | Unrecognized
)


def _dig(data: Any, *keys: str) -> Any:
    """Follow nested dict keys, returning ``None`` on any miss."""
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def classify_claude_line(line: str) -> ClaudeLine:
    """Classify one stdout line from ``claude --output-format stream-json``.

    Rules are checked in priority order and are mutually exclusive.
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return Unrecognized("malformed JSON")
    if not isinstance(data, dict):
        return Unrecognized("not a JSON object")

    kind = data.get("type")

    if kind == "system" and data.get("subtype") == "init":
        session_id = data.get("session_id")
        return Init(session_id if isinstance(session_id, str) and session_id else None)

    if kind == "stream_event" and _dig(data, "event", "type") == "content_block_start":
        block_type = _dig(data, "event", "content_block", "type")
        if block_type == "thinking":
            return ThinkingStart()
        if block_type == "tool_use":
            name = _dig(data, "event", "content_block", "name")
            return ToolUseStart(name if isinstance(name, str) and name else "unknown")

    content = _dig(data, "message", "content")
    if kind == "assistant" and content:
        uses: list[ToolUse] = []
        if isinstance(content, list):
            for block in content:
                if isinstance(block, dict) and block.get("type") == "tool_use":
                    tool_input = block.get("input")
                    uses.append(
                        ToolUse(
                            name=str(block.get("name", "")),
                            input=tool_input if tool_input is not None else {},
                        )
                    )
        return AssistantToolUses(tuple(uses))

    if kind == "user" and "tool_use_result" in data:
        return ToolResult()

    if (
        kind == "stream_event"
        and _dig(data, "event", "type") == "content_block_delta"
        and _dig(data, "event", "delta", "type") == "text_delta"
    ):
        text = _dig(data, "event", "delta", "text")
        if isinstance(text, str):
            return TextDelta(text)
        return Unrecognized("text delta without text")

    if kind == "result":
        return Result()

    return Unrecognized(f"unhandled type {kind!r}")


# ------------------------------------------------------------------ #
# Adapter
# ------------------------------------------------------------------ #


class ClaudeAdapter:
    """Drives a single long-lived ``claude`` subprocess.

    The process is spawned on the first :meth:`send` and reused for every
    later turn.  A non-zero exit that was not caused by :meth:`kill`
    surfaces as ``response.failed``.
    """

    def __init__(
        self,
        config: AdapterConfig,
        emit: EmitFn,
        on_init: InitFn,
        call_ids: CallIdGenerator | None = None,
    ) -> None:
        self._config = config
        self._options = (
            config.options if isinstance(config.options, ClaudeOptions) else ClaudeOptions()
        )
        self._emit = emit
        self._on_init = on_init
        self._call_ids = call_ids or CallIdGenerator()

        self._process: asyncio.subprocess.Process | None = None
        self._run_task: asyncio.Task[None] | None = None
        self._killed = False

    @property
    def killed(self) -> bool:
        return self._killed

    @property
    def pid(self) -> int | None:
        """PID of the running subprocess, if any."""
        if self._process is not None and self._process.returncode is None:
            return self._process.pid
        return None

    def build_args(self) -> list[str]:
        args = [
            PROGRAM,
            "-p",
            "--input-format",
            "stream-json",
            "--output-format",
            "stream-json",
            "--include-partial-messages",
        ]
        if self._options.verbose:
            args.append("--verbose")
        if self._options.skip_permissions:
            args.append("--dangerously-skip-permissions")
        if self._config.cli_session_id:
            args.extend(["--resume", self._config.cli_session_id])
        args.extend(self._options.extra_args)
        return args

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self) -> bool:
        """Spawn the subprocess if needed.  Returns ``False`` on failure."""
        if self._process is not None:
            return True
        if self._killed:
            return False

        args = self.build_args()
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                cwd=self._config.cwd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except FileNotFoundError:
            self._fail(
                f"{PROGRAM} CLI not found. Make sure '{PROGRAM}' is installed "
                "and on your PATH."
            )
            return False
        except OSError as exc:
            self._fail(f"failed to spawn {PROGRAM}: {exc}")
            return False

        self._process = proc
        if self._killed:
            # kill() landed while we were spawning.
            kill_process(proc)
        logger.debug("spawned %s (pid %s) in %s", PROGRAM, proc.pid, self._config.cwd)
        self._run_task = asyncio.create_task(self._run(proc))
        return not self._killed

    async def send(self, text: str) -> None:
        if self._killed:
            return
        if not await self.start():
            return

        proc = self._process
        if proc is None or proc.stdin is None:
            self._fail(f"{PROGRAM} process has no stdin")
            self.kill()
            return

        payload = {"type": "user", "message": {"role": "user", "content": text}}
        try:
            proc.stdin.write((json.dumps(payload) + "\n").encode())
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError, OSError) as exc:
            self._fail(f"failed to write to {PROGRAM} stdin: {exc}")
            # One failure per adapter; the exit that follows stays silent.
            self.kill()

    def kill(self) -> None:
        self._killed = True
        kill_process(self._process)

    async def wait_closed(self) -> None:
        """Wait for the read loop to finish (after exit or kill)."""
        if self._run_task is not None:
            await self._run_task

    async def _run(self, proc: asyncio.subprocess.Process) -> None:
        stderr_task = asyncio.create_task(collect_tail(proc.stderr))
        if proc.stdout is not None:
            await pump(proc.stdout, LineReader(self.handle_line))
        stderr_bytes = await stderr_task
        returncode = await proc.wait()

        if self._killed:
            logger.debug("%s (pid %s) stopped after kill", PROGRAM, proc.pid)
        elif returncode > 0:
            self._fail(describe_exit(PROGRAM, returncode, stderr_bytes))
        elif returncode < 0:
            logger.warning("%s terminated by signal %d", PROGRAM, -returncode)
        else:
            logger.info("%s exited cleanly", PROGRAM)

    def _fail(self, error: str) -> None:
        if self._killed:
            return
        logger.error("%s: %s", PROGRAM, error)
        self._emit(ResponseFailed(error=error))

    # ------------------------------------------------------------------ #
    # Translation
    # ------------------------------------------------------------------ #

    def handle_line(self, line: str) -> None:
        """Classify one stdout line and emit its canonical events."""
        if self._killed:
            return
        parsed = classify_claude_line(line)
        if isinstance(parsed, Unrecognized):
            logger.debug("skipping %s line (%s): %s", PROGRAM, parsed.reason, line[:200])
            return
        for event in self._translate(parsed):
            self._emit(event)

    def _translate(self, parsed: ClaudeLine) -> list[CanonicalEvent]:
        match parsed:
            case Init(session_id=session_id):
                if session_id:
                    self._config.cli_session_id = session_id
                    self._on_init(session_id)
                return [ResponseCreated(), ResponseInProgress()]
            case ThinkingStart():
                return [OutputItemAdded(item=ReasoningItem())]
            case ToolUseStart(name=name):
                item = FunctionCallItem(name=name, arguments="", call_id=self._call_ids())
                return [OutputItemAdded(item=item)]
            case AssistantToolUses(uses=uses):
                events: list[CanonicalEvent] = []
                for use in uses:
                    item = FunctionCallItem(
                        name=use.name,
                        arguments=encode_arguments(use.input),
                        call_id=self._call_ids(),
                    )
                    events.append(OutputItemAdded(item=item))
                    events.append(OutputItemDone(item=item))
                return events
            case TextDelta(text=text):
                return [OutputTextDelta(delta=text)]
            case Result():
                return [ResponseCompleted()]
            case _:
                # Tool results were already surfaced by the assistant
                # message's output_item.done.
                return []
