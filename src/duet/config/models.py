"""Pydantic v2 models for duet.yaml configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from duet.adapters.options import ClaudeOptions, CLIKind, CodexOptions


def _default_data_dir() -> Path:
    return Path.home() / ".duet" / "sessions"


class DuetConfig(BaseModel):
    """Top-level duet.yaml configuration."""

    model_config = ConfigDict(extra="forbid")

    data_dir: Path = Field(
        default_factory=_default_data_dir,
        description="Directory holding one JSON file per session",
    )
    idle_timeout: float = Field(
        default=300.0,
        description="Seconds of inactivity before a live session is killed (<= 0 disables)",
    )
    sweep_interval: float = Field(
        default=60.0,
        gt=0,
        description="Seconds between idle sweeps",
    )
    default_cwd: Path = Field(
        default_factory=Path.home,
        description="Working directory for new sessions when none is given",
    )
    default_cli: CLIKind = Field(
        default="claude",
        description="Agent kind for new sessions when none is given",
    )
    claude: ClaudeOptions = Field(default_factory=ClaudeOptions)
    codex: CodexOptions = Field(default_factory=CodexOptions)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] | None = Field(
        default=None,
        description="Install a root log handler at this level",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.upper()
        return value

    @field_validator("data_dir", "default_cwd", mode="after")
    @classmethod
    def _expand(cls, value: Path) -> Path:
        return value.expanduser()

    @model_validator(mode="after")
    def _validate_default_cwd(self) -> DuetConfig:
        if self.default_cwd.exists() and not self.default_cwd.is_dir():
            msg = f"default_cwd '{self.default_cwd}' is not a directory"
            raise ValueError(msg)
        return self

    def adapter_defaults(self) -> dict[str, ClaudeOptions | CodexOptions]:
        """Per-kind adapter options, as ``Registry(default_options=...)`` expects."""
        return {"claude": self.claude, "codex": self.codex}
