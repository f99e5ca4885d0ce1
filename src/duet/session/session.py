"""Session — one conversation, its history, and at most one live adapter."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from duet.adapters import (
    Adapter,
    AdapterConfig,
    AdapterFactory,
    AdapterOptions,
    CallIdGenerator,
    CLIKind,
    create_adapter,
)
from duet.events import (
    CanonicalEvent,
    EventBus,
    MessageItem,
    OutputItemAdded,
    OutputItemDone,
    OutputTextDelta,
    OutputTextDone,
    ResponseCompleted,
    ResponseFailed,
    ResponseInProgress,
)
from duet.session.models import UNTITLED_PLACEHOLDER, Message, SessionInfo, SessionMeta
from duet.session.store import MetaStore

logger = logging.getLogger(__name__)

#: Titles are the first this-many characters of the first user message.
TITLE_MAX_CHARS = 80

#: Title used when a turn completes without any user message in history.
FALLBACK_TITLE = "Untitled"


class Session:
    """Owns a conversation and reshapes its adapter's events.

    Adapter events arrive through :meth:`_handle_event`, which frames
    streamed text with a synthetic assistant ``message`` item, appends the
    finished answer to history, persists, and republishes everything on
    :attr:`events`.

    Callers must wait for ``response.completed`` or ``response.failed``
    before sending the next turn; concurrent sends are neither queued
    nor rejected.
    """

    def __init__(
        self,
        meta: SessionMeta,
        store: MetaStore,
        adapter_options: AdapterOptions | None = None,
        adapter_factory: AdapterFactory | None = None,
        call_ids: CallIdGenerator | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._id = meta.id
        self._cwd = meta.cwd
        self._cli_kind: CLIKind = meta.cli_kind
        self._created_at = meta.created_at
        self._title = meta.title
        self._messages: list[Message] = list(meta.messages)
        self._cli_session_id = meta.cli_session_id

        self._store = store
        self._adapter_options = adapter_options
        self._adapter_factory = adapter_factory or create_adapter
        self._call_ids = call_ids or CallIdGenerator()
        self._clock = clock

        self._events = EventBus()
        self._adapter: Adapter | None = None
        self._adapter_token: object | None = None
        self._buffer = ""
        self._text_item_emitted = False
        self._last_activity = clock()

    # ------------------------------------------------------------------ #
    # Public properties
    # ------------------------------------------------------------------ #

    @property
    def id(self) -> str:
        return self._id

    @property
    def cwd(self) -> str:
        return self._cwd

    @property
    def cli_kind(self) -> CLIKind:
        return self._cli_kind

    @property
    def created_at(self) -> int:
        return self._created_at

    @property
    def title(self) -> str:
        return self._title

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def cli_session_id(self) -> str | None:
        return self._cli_session_id

    @property
    def alive(self) -> bool:
        """True while an adapter is attached."""
        return self._adapter is not None

    @property
    def last_activity(self) -> float:
        return self._last_activity

    @property
    def events(self) -> EventBus:
        return self._events

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #

    async def send(self, text: str) -> None:
        """Record *text* as a user message and submit it as a turn."""
        self._last_activity = self._clock()
        self._messages.append(Message(role="user", text=text))
        self._save()

        adapter = self._adapter or self.spawn_adapter()
        await adapter.send(text)

    def kill(self) -> None:
        """Kill the attached adapter, if any."""
        if self._adapter is not None:
            adapter = self._adapter
            self._detach()
            adapter.kill()

    def fail(self, reason: str) -> None:
        """Kill the adapter and tell subscribers why the session stopped."""
        self.kill()
        self._events.publish(ResponseFailed(error=reason))

    def spawn_adapter(self) -> Adapter:
        """Attach an adapter (a no-op returning the current one if attached)."""
        if self._adapter is not None:
            return self._adapter
        config = AdapterConfig(
            cwd=self._cwd,
            cli_session_id=self._cli_session_id,
            options=self._adapter_options,
        )
        token = object()
        self._adapter_token = token

        def _emit(event: CanonicalEvent) -> None:
            if self._adapter_token is not token:
                logger.debug("session %s: dropping %s from detached adapter",
                             self._id, event.type)
                return
            self._handle_event(event)

        def _on_init(cli_session_id: str) -> None:
            if self._adapter_token is token:
                self._on_init(cli_session_id)

        adapter = self._adapter_factory(
            self._cli_kind, config, _emit, _on_init, self._call_ids
        )
        self._adapter = adapter
        logger.debug("session %s: attached %s adapter", self._id, self._cli_kind)
        return adapter

    def info(self) -> SessionInfo:
        return SessionInfo(
            id=self._id,
            title=self._title or UNTITLED_PLACEHOLDER,
            created_at=self._created_at,
            cwd=self._cwd,
            cli_kind=self._cli_kind,
            message_count=len(self._messages),
            alive=self.alive,
        )

    def to_meta(self) -> SessionMeta:
        return SessionMeta(
            id=self._id,
            title=self._title,
            created_at=self._created_at,
            cwd=self._cwd,
            cli_kind=self._cli_kind,
            cli_session_id=self._cli_session_id,
            messages=list(self._messages),
        )

    # ------------------------------------------------------------------ #
    # Adapter callbacks
    # ------------------------------------------------------------------ #

    def _on_init(self, cli_session_id: str) -> None:
        if cli_session_id:
            self._cli_session_id = cli_session_id
            self._save()

    def _handle_event(self, event: CanonicalEvent) -> None:
        self._last_activity = self._clock()

        match event:
            case ResponseInProgress():
                self._buffer = ""
                self._text_item_emitted = False
                self._events.publish(event)

            case OutputTextDelta(delta=delta):
                if not self._text_item_emitted:
                    self._text_item_emitted = True
                    self._events.publish(OutputItemAdded(item=MessageItem()))
                self._buffer += delta
                self._events.publish(event)

            case ResponseCompleted():
                if self._buffer:
                    text = self._buffer
                    self._events.publish(OutputTextDone(text=text))
                    self._events.publish(OutputItemDone(item=MessageItem()))
                    self._messages.append(Message(role="assistant", text=text))
                    self._derive_title()
                    self._buffer = ""
                self._text_item_emitted = False
                self._save()
                self._events.publish(event)

            case ResponseFailed():
                self._detach()
                self._events.publish(event)

            case _:
                self._events.publish(event)

    # ------------------------------------------------------------------ #
    # Internal
    # ------------------------------------------------------------------ #

    def _detach(self) -> None:
        """Forget the adapter; anything it emits from now on is dropped."""
        self._adapter = None
        self._adapter_token = None

    def _derive_title(self) -> None:
        if self._title:
            return
        first_user = next((m for m in self._messages if m.role == "user"), None)
        self._title = first_user.text[:TITLE_MAX_CHARS] if first_user else ""
        if not self._title:
            self._title = FALLBACK_TITLE

    def _save(self) -> None:
        try:
            self._store.save(self.to_meta())
        except OSError as exc:
            logger.warning("session %s: failed to persist metadata: %s", self._id, exc)
