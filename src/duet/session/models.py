"""Pydantic v2 models for session metadata and creation options."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from duet.adapters.options import AdapterOptions, CLIKind

#: Title shown for sessions that have not completed a turn yet.
UNTITLED_PLACEHOLDER = "New session"


class _CamelModel(BaseModel):
    """Serializes to camelCase keys, accepts either spelling."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Message(_CamelModel):
    """One entry of a session's conversation history."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    text: str


class SessionMeta(_CamelModel):
    """Everything persisted about a session, one JSON file per session."""

    id: str = Field(description="Short random identifier, immutable")
    title: str = Field(default="", description="Derived from the first user message")
    created_at: int = Field(description="Creation time, epoch milliseconds")
    cwd: str = Field(description="Working directory of the agent")
    cli_kind: CLIKind = Field(
        default="claude",
        validation_alias=AliasChoices("cliKind", "cli_kind", "cli"),
        serialization_alias="cliKind",
        description="Agent kind; legacy files used the key 'cli'",
    )
    cli_session_id: str | None = Field(
        default=None,
        description="External resumption token (claude session / codex thread)",
    )
    messages: list[Message] = Field(default_factory=list)

    def dump(self) -> str:
        return self.model_dump_json(by_alias=True)


class SessionInfo(_CamelModel):
    """Lightweight projection returned by ``Registry.list()``."""

    id: str
    title: str
    created_at: int
    cwd: str
    cli_kind: CLIKind
    message_count: int
    alive: bool


class CreateOptions(BaseModel):
    """Input to ``Registry.create``."""

    model_config = ConfigDict(extra="forbid")

    cwd: str
    cli_kind: CLIKind = "claude"
    adapter_options: AdapterOptions | None = Field(default=None, discriminator="kind")

    @field_validator("cli_kind", mode="before")
    @classmethod
    def _coerce_kind(cls, value: Any) -> str:
        return "codex" if value == "codex" else "claude"
