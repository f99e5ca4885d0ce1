"""Codex adapter — a fresh ``codex exec`` process for every turn.

The prompt travels as a command-line argument; once the first turn has
reported a thread id, later turns use ``codex exec resume <thread>``.
Codex delivers agent text atomically, so each ``agent_message`` becomes
a single text delta.
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
from duet.adapters.options import CodexOptions
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

PROGRAM = "codex"

#: Reasoning previews are cut to this many characters.
REASONING_PREVIEW_CHARS = 200

#: Tool name reported for shell commands run by codex.
COMMAND_TOOL_NAME = "command_execution"


# ------------------------------------------------------------------ #
# Line classification
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class ThreadStarted:
    thread_id: str


@dataclass(frozen=True)
class ReasoningDone:
    text: str


@dataclass(frozen=True)
class CommandStarted:
    command: str


@dataclass(frozen=True)
class CommandDone:
    command: str
    exit_code: int | None


@dataclass(frozen=True)
class AgentMessage:
    text: str


@dataclass(frozen=True)
class TurnCompleted:
    pass


@dataclass(frozen=True)
class Unrecognized:
    reason: str


CodexLine = (
    ThreadStarted
    | ReasoningDone
    | CommandStarted
    | CommandDone
    | AgentMessage
    | TurnCompleted
    | Unrecognized
)


def _text(item: dict[str, Any], key: str) -> str:
    value = item.get(key)
    return value if isinstance(value, str) else ""


def classify_codex_line(line: str) -> CodexLine:
    """Classify one stdout line from ``codex exec --json``."""
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return Unrecognized("malformed JSON")
    if not isinstance(data, dict):
        return Unrecognized("not a JSON object")

    kind = data.get("type")
    item = data.get("item")
    item_type = item.get("type") if isinstance(item, dict) else None

    if kind == "thread.started":
        thread_id = data.get("thread_id")
        if isinstance(thread_id, str) and thread_id:
            return ThreadStarted(thread_id)
        return Unrecognized("thread.started without thread_id")

    if isinstance(item, dict):
        if kind == "item.completed" and item_type == "reasoning":
            return ReasoningDone(_text(item, "text")[:REASONING_PREVIEW_CHARS])
        if kind == "item.started" and item_type == "command_execution":
            return CommandStarted(_text(item, "command"))
        if kind == "item.completed" and item_type == "command_execution":
            exit_code = item.get("exit_code")
            return CommandDone(
                command=_text(item, "command"),
                exit_code=exit_code if isinstance(exit_code, int) else None,
            )
        if kind == "item.completed" and item_type == "agent_message":
            return AgentMessage(_text(item, "text"))

    if kind == "turn.completed":
        return TurnCompleted()

    return Unrecognized(f"unhandled type {kind!r}")


# ------------------------------------------------------------------ #
# Adapter
# ------------------------------------------------------------------ #


class CodexAdapter:
    """Spawns ``codex exec`` once per turn.

    Ready as soon as it is constructed: ``response.created`` is emitted
    immediately, since there is no long-lived process to wait for.
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
            config.options if isinstance(config.options, CodexOptions) else CodexOptions()
        )
        self._emit = emit
        self._on_init = on_init
        self._call_ids = call_ids or CallIdGenerator()

        self._process: asyncio.subprocess.Process | None = None
        self._turn_task: asyncio.Task[None] | None = None
        self._killed = False

        self._emit(ResponseCreated())

    @property
    def killed(self) -> bool:
        return self._killed

    @property
    def thread_id(self) -> str | None:
        return self._config.cli_session_id

    @property
    def pid(self) -> int | None:
        if self._process is not None and self._process.returncode is None:
            return self._process.pid
        return None

    def build_args(self, text: str) -> list[str]:
        flags: list[str] = ["--json"]
        if self._options.bypass_approvals:
            flags.append("--dangerously-bypass-approvals-and-sandbox")
        if self._options.skip_git_repo_check:
            flags.append("--skip-git-repo-check")

        thread_id = self._config.cli_session_id
        if thread_id:
            # ``resume`` does not accept -C; the thread remembers its cwd.
            return [
                PROGRAM, "exec", "resume",
                *flags, *self._options.extra_args,
                thread_id, text,
            ]
        return [
            PROGRAM, "exec",
            *flags, "-C", self._config.cwd, *self._options.extra_args,
            text,
        ]

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def send(self, text: str) -> None:
        if self._killed:
            return

        args = self.build_args(text)
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                cwd=self._config.cwd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except FileNotFoundError:
            self._fail(
                f"{PROGRAM} CLI not found. Make sure '{PROGRAM}' is installed "
                "and on your PATH."
            )
            return
        except OSError as exc:
            self._fail(f"failed to spawn {PROGRAM}: {exc}")
            return

        self._process = proc
        if self._killed:
            kill_process(proc)
        logger.debug("spawned %s turn (pid %s)", PROGRAM, proc.pid)
        self._turn_task = asyncio.create_task(self._run_turn(proc))

    def kill(self) -> None:
        self._killed = True
        kill_process(self._process)

    async def wait_closed(self) -> None:
        """Wait for the current turn's process to be reaped."""
        if self._turn_task is not None:
            await self._turn_task

    async def _run_turn(self, proc: asyncio.subprocess.Process) -> None:
        stderr_task = asyncio.create_task(collect_tail(proc.stderr))
        if proc.stdout is not None:
            await pump(proc.stdout, LineReader(self.handle_line))
        stderr_bytes = await stderr_task
        returncode = await proc.wait()
        if self._process is proc:
            self._process = None

        if self._killed:
            logger.debug("%s turn (pid %s) stopped after kill", PROGRAM, proc.pid)
        elif returncode > 0:
            self._fail(describe_exit(PROGRAM, returncode, stderr_bytes))
        elif returncode < 0:
            logger.warning("%s turn terminated by signal %d", PROGRAM, -returncode)

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
        parsed = classify_codex_line(line)
        if isinstance(parsed, Unrecognized):
            logger.debug("skipping %s line (%s): %s", PROGRAM, parsed.reason, line[:200])
            return
        for event in self._translate(parsed):
            self._emit(event)

    def _translate(self, parsed: CodexLine) -> list[CanonicalEvent]:
        match parsed:
            case ThreadStarted(thread_id=thread_id):
                if not self._config.cli_session_id:
                    self._config.cli_session_id = thread_id
                    self._on_init(thread_id)
                return [ResponseCreated(), ResponseInProgress()]
            case ReasoningDone(text=text):
                item = ReasoningItem(text=text)
                return [OutputItemAdded(item=item), OutputItemDone(item=item)]
            case CommandStarted(command=command):
                item = FunctionCallItem(
                    name=COMMAND_TOOL_NAME,
                    arguments=encode_arguments({"command": command}),
                    call_id=self._call_ids(),
                )
                return [OutputItemAdded(item=item)]
            case CommandDone(command=command, exit_code=exit_code):
                # The done event gets its own call id; it is not correlated
                # with the started event.
                arguments: dict[str, Any] = {"command": command}
                if exit_code is not None:
                    arguments["exit_code"] = exit_code
                item = FunctionCallItem(
                    name=COMMAND_TOOL_NAME,
                    arguments=encode_arguments(arguments),
                    call_id=self._call_ids(),
                )
                return [OutputItemDone(item=item)]
            case AgentMessage(text=text):
                return [OutputTextDelta(delta=text)] if text else []
            case TurnCompleted():
                return [ResponseCompleted()]
            case _:
                return []
