"""In-process adapters for exercising sessions without a real CLI."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from duet.adapters import (
    Adapter,
    AdapterConfig,
    AdapterFactory,
    CallIdGenerator,
    CLIKind,
    EmitFn,
    InitFn,
)
from duet.events import CanonicalEvent


class ScriptedAdapter:
    """Replays a fixed list of canonical events on every :meth:`send`.

    With ``delay=None`` the script is emitted synchronously inside
    ``send``; otherwise each event is emitted from a background task,
    *delay* seconds apart, so a kill can land mid-turn.
    """

    def __init__(
        self,
        config: AdapterConfig,
        emit: EmitFn,
        on_init: InitFn,
        script: Sequence[CanonicalEvent],
        cli_session_id: str | None = None,
        delay: float | None = None,
    ) -> None:
        self.config = config
        self.sent: list[str] = []
        self._emit = emit
        self._on_init = on_init
        self._script = list(script)
        self._cli_session_id = cli_session_id
        self._delay = delay
        self._task: asyncio.Task[None] | None = None
        self._killed = False

    @property
    def killed(self) -> bool:
        return self._killed

    async def send(self, text: str) -> None:
        if self._killed:
            return
        self.sent.append(text)
        if self._cli_session_id and not self.config.cli_session_id:
            self.config.cli_session_id = self._cli_session_id
            self._on_init(self._cli_session_id)
        if self._delay is None:
            for event in self._script:
                self._emit(event)
            return
        self._task = asyncio.create_task(self._replay(self._delay))

    def kill(self) -> None:
        self._killed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait_closed(self) -> None:
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _replay(self, delay: float) -> None:
        for event in self._script:
            await asyncio.sleep(delay)
            if self._killed:
                return
            self._emit(event)


def scripted_adapter_factory(
    script: Sequence[CanonicalEvent],
    cli_session_id: str | None = None,
    delay: float | None = None,
) -> tuple[AdapterFactory, list[ScriptedAdapter]]:
    """Return a factory building :class:`ScriptedAdapter` s, plus the list
    every adapter it builds is appended to."""
    created: list[ScriptedAdapter] = []

    def _factory(
        cli_kind: CLIKind,
        config: AdapterConfig,
        emit: EmitFn,
        on_init: InitFn,
        call_ids: CallIdGenerator,
    ) -> Adapter:
        adapter = ScriptedAdapter(
            config, emit, on_init, script,
            cli_session_id=cli_session_id, delay=delay,
        )
        created.append(adapter)
        return adapter

    return _factory, created
