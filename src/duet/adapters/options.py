"""Per-CLI adapter options (flags that suppress interactive prompts)."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

CLIKind = Literal["claude", "codex"]


class ClaudeOptions(BaseModel):
    """Options for the persistent ``claude`` process."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["claude"] = "claude"
    skip_permissions: bool = Field(
        default=True,
        description="Pass --dangerously-skip-permissions",
    )
    verbose: bool = Field(
        default=True,
        description="Pass --verbose (required by stream-json output)",
    )
    extra_args: list[str] = Field(
        default_factory=list,
        description="Additional arguments appended to the command line",
    )


class CodexOptions(BaseModel):
    """Options for the per-turn ``codex exec`` process."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["codex"] = "codex"
    bypass_approvals: bool = Field(
        default=True,
        description="Pass --dangerously-bypass-approvals-and-sandbox",
    )
    skip_git_repo_check: bool = Field(
        default=True,
        description="Pass --skip-git-repo-check",
    )
    extra_args: list[str] = Field(
        default_factory=list,
        description="Additional arguments inserted before the prompt",
    )


AdapterOptions = ClaudeOptions | CodexOptions
