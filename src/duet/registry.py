"""Registry — the directory of sessions, with idle-based reclamation."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable, Mapping
from pathlib import Path

from duet.adapters import AdapterFactory, AdapterOptions, CallIdGenerator, CLIKind
from duet.background_loop import BackgroundLoop
from duet.session.models import CreateOptions, SessionInfo, SessionMeta
from duet.session.session import Session
from duet.session.store import MetaStore

logger = logging.getLogger(__name__)

#: Seconds without activity before a live session is killed.
DEFAULT_IDLE_TIMEOUT = 300.0

#: Seconds between idle sweeps.
DEFAULT_SWEEP_INTERVAL = 60.0

#: Error carried by the ``response.failed`` event the sweep publishes.
IDLE_TIMEOUT_REASON = "idle timeout"

#: Length of generated session ids (hex characters).
_ID_LENGTH = 8


class IdleSweeper(BackgroundLoop):
    """Periodically kills sessions that have been idle too long."""

    def __init__(
        self,
        registry: Registry,
        shutdown_event: asyncio.Event,
        interval: float,
    ) -> None:
        super().__init__(shutdown_event, interval)
        self._registry = registry

    def _should_start(self) -> bool:
        return self._registry.idle_timeout > 0 and self._interval > 0

    async def _tick(self) -> None:
        self._registry.sweep_idle()


class Registry:
    """Owns every :class:`Session`, keyed by id.

    Sessions whose files are in *data_dir* are restored by :meth:`load`;
    new ones come from :meth:`create`.  Each registry owns its own sweep
    task and call-id counter, so several can coexist in one process.
    """

    def __init__(
        self,
        data_dir: Path | str,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        adapter_factory: AdapterFactory | None = None,
        default_options: Mapping[CLIKind, AdapterOptions] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = MetaStore(data_dir)
        self._default_options = dict(default_options or {})
        self._idle_timeout = idle_timeout
        self._adapter_factory = adapter_factory
        self._clock = clock
        self._call_ids = CallIdGenerator()
        self._sessions: dict[str, Session] = {}
        self._shutdown_event = asyncio.Event()
        self._sweeper = IdleSweeper(self, self._shutdown_event, sweep_interval)

    @property
    def data_dir(self) -> Path:
        return self._store.data_dir

    @property
    def idle_timeout(self) -> float:
        return self._idle_timeout

    @property
    def sweeping(self) -> bool:
        return self._sweeper.running

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #

    async def load(self) -> None:
        """Restore every persisted session not already in memory."""
        for meta in self._store.load_all():
            if meta.id in self._sessions:
                continue
            self._sessions[meta.id] = self._make_session(meta)
        logger.info("loaded %d session(s) from %s", len(self._sessions), self.data_dir)
        await self._start_idle_sweep()

    async def create(self, options: CreateOptions) -> Session:
        """Create, register and persist an empty session."""
        meta = SessionMeta(
            id=self._new_id(),
            title="",
            created_at=int(self._clock() * 1000),
            cwd=options.cwd,
            cli_kind=options.cli_kind,
            cli_session_id=None,
            messages=[],
        )
        session = self._make_session(meta, options)
        self._sessions[meta.id] = session
        try:
            self._store.save(meta)
        except OSError as exc:
            logger.warning("session %s: failed to persist metadata: %s", meta.id, exc)
        await self._start_idle_sweep()
        return session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def list(self) -> list[SessionInfo]:
        return [session.info() for session in self._sessions.values()]

    async def destroy(self, session_id: str) -> None:
        """Kill, forget and delete a session.  Unknown ids are a no-op."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        session.kill()
        try:
            self._store.delete(session_id)
        except OSError as exc:
            logger.warning("session %s: failed to delete metadata: %s", session_id, exc)

    async def close(self) -> None:
        """Stop the idle sweep and kill every session."""
        self._shutdown_event.set()
        await self._sweeper.stop()
        for session in self._sessions.values():
            session.kill()

    def sweep_idle(self) -> list[str]:
        """Kill live sessions idle past the timeout; returns their ids."""
        if self._idle_timeout <= 0:
            return []
        now = self._clock()
        swept: list[str] = []
        for session in list(self._sessions.values()):
            if not session.alive:
                continue
            if now - session.last_activity > self._idle_timeout:
                logger.info("session %s idle for %.0fs, killing", session.id,
                            now - session.last_activity)
                session.fail(IDLE_TIMEOUT_REASON)
                swept.append(session.id)
        return swept

    # ------------------------------------------------------------------ #
    # Internal
    # ------------------------------------------------------------------ #

    def _make_session(
        self,
        meta: SessionMeta,
        options: CreateOptions | None = None,
    ) -> Session:
        adapter_options = options.adapter_options if options else None
        if adapter_options is None:
            adapter_options = self._default_options.get(meta.cli_kind)
        return Session(
            meta,
            self._store,
            adapter_options=adapter_options,
            adapter_factory=self._adapter_factory,
            call_ids=self._call_ids,
            clock=self._clock,
        )

    def _new_id(self) -> str:
        while True:
            candidate = uuid.uuid4().hex[:_ID_LENGTH]
            if candidate not in self._sessions:
                return candidate

    async def _start_idle_sweep(self) -> None:
        if self._shutdown_event.is_set():
            return
        await self._sweeper.start()
