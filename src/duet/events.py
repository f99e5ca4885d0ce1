"""Pydantic v2 models for the canonical event stream, plus the per-session bus."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, TypeAdapter

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------ #
# Output items
# ------------------------------------------------------------------ #


class _ItemBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class MessageItem(_ItemBase):
    """The assistant's text answer for a turn."""

    type: Literal["message"] = "message"
    role: Literal["assistant"] = "assistant"


class ReasoningItem(_ItemBase):
    """A reasoning / thinking block, with an optional preview."""

    type: Literal["reasoning"] = "reasoning"
    text: str | None = Field(default=None, description="Optional preview text")


class FunctionCallItem(_ItemBase):
    """A tool invocation made by the agent."""

    type: Literal["function_call"] = "function_call"
    name: str = Field(description="Tool name")
    arguments: str = Field(description="JSON-encoded tool arguments")
    call_id: str = Field(description="Generated call identifier")


def _type_discriminator(v: Any) -> str:
    """Extract the discriminator value from raw data or a model instance."""
    if isinstance(v, dict):
        return str(v.get("type", ""))
    return str(getattr(v, "type", ""))


OutputItem = Annotated[
    Annotated[MessageItem, Tag("message")]
    | Annotated[ReasoningItem, Tag("reasoning")]
    | Annotated[FunctionCallItem, Tag("function_call")],
    Discriminator(_type_discriminator),
]
"""Discriminated union of output item payloads."""


# ------------------------------------------------------------------ #
# Events
# ------------------------------------------------------------------ #


class _EventBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class ResponseCreated(_EventBase):
    """The agent is ready to accept turns."""

    type: Literal["response.created"] = "response.created"


class ResponseInProgress(_EventBase):
    """A turn has started streaming."""

    type: Literal["response.in_progress"] = "response.in_progress"


class OutputItemAdded(_EventBase):
    type: Literal["response.output_item.added"] = "response.output_item.added"
    item: OutputItem


class OutputItemDone(_EventBase):
    type: Literal["response.output_item.done"] = "response.output_item.done"
    item: OutputItem


class OutputTextDelta(_EventBase):
    type: Literal["response.output_text.delta"] = "response.output_text.delta"
    delta: str


class OutputTextDone(_EventBase):
    type: Literal["response.output_text.done"] = "response.output_text.done"
    text: str


class ResponseCompleted(_EventBase):
    """The turn finished."""

    type: Literal["response.completed"] = "response.completed"


class ResponseFailed(_EventBase):
    """The session stopped working; carries a human-readable reason."""

    type: Literal["response.failed"] = "response.failed"
    error: str


CanonicalEvent = Annotated[
    Annotated[ResponseCreated, Tag("response.created")]
    | Annotated[ResponseInProgress, Tag("response.in_progress")]
    | Annotated[OutputItemAdded, Tag("response.output_item.added")]
    | Annotated[OutputItemDone, Tag("response.output_item.done")]
    | Annotated[OutputTextDelta, Tag("response.output_text.delta")]
    | Annotated[OutputTextDone, Tag("response.output_text.done")]
    | Annotated[ResponseCompleted, Tag("response.completed")]
    | Annotated[ResponseFailed, Tag("response.failed")],
    Discriminator(_type_discriminator),
]
"""Discriminated union of all canonical events."""

_EVENT_ADAPTER: TypeAdapter[CanonicalEvent] = TypeAdapter(CanonicalEvent)

#: Events that end a turn.
TERMINAL_TYPES = frozenset({"response.completed", "response.failed"})


def parse_event(data: dict[str, Any] | str) -> CanonicalEvent:
    """Validate a dict or JSON string into a canonical event model."""
    if isinstance(data, str):
        return _EVENT_ADAPTER.validate_json(data)
    return _EVENT_ADAPTER.validate_python(data)


def event_to_json(event: CanonicalEvent) -> str:
    """Serialize *event* as one compact JSON object, omitting unset fields."""
    return event.model_dump_json(exclude_none=True)


def event_name(event: CanonicalEvent) -> str:
    """Name under which a push transport should forward *event*."""
    return event.type


# ------------------------------------------------------------------ #
# Event bus
# ------------------------------------------------------------------ #

Subscriber = Callable[[CanonicalEvent], None]


class EventBus:
    """Single-producer, multi-consumer channel for one session's events.

    Delivery is synchronous and in publish order.  A subscriber that
    raises is logged and skipped; the others still receive the event.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register *callback*; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, event: CanonicalEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Event subscriber failed on %s", event.type)

    def listen(self) -> Listener:
        """Subscribe a queue-backed async iterator.

        The subscription is live as soon as this returns, so nothing
        published between ``listen()`` and the first ``await`` is lost.
        """
        return Listener(self)


class Listener:
    """Async iterator over a bus's events; close it to unsubscribe.

    Closing also ends an iteration that is blocked waiting for the next
    event (``None`` is queued as the end marker).
    """

    def __init__(self, bus: EventBus) -> None:
        self._queue: asyncio.Queue[CanonicalEvent | None] = asyncio.Queue()
        self._unsubscribe = bus.subscribe(self._queue.put_nowait)
        self._closed = False

    def __aiter__(self) -> AsyncIterator[CanonicalEvent]:
        return self

    async def __anext__(self) -> CanonicalEvent:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event

    def pending(self) -> list[CanonicalEvent]:
        """Drain and return everything queued so far without waiting."""
        drained: list[CanonicalEvent] = []
        while not self._queue.empty():
            event = self._queue.get_nowait()
            if event is not None:
                drained.append(event)
        return drained

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._unsubscribe()
            self._queue.put_nowait(None)

    def __enter__(self) -> Listener:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
