"""Session commands: new, ls, show, send, rm."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from pathlib import Path
from typing import Any

import click

from duet.config import DuetConfig
from duet.events import TERMINAL_TYPES, ResponseFailed, event_to_json
from duet.registry import Registry
from duet.session import CreateOptions

#: Characters of title shown by ``duet ls``.
_TITLE_WIDTH = 50


def _open_registry(config: DuetConfig) -> Registry:
    return Registry(
        config.data_dir,
        idle_timeout=config.idle_timeout,
        sweep_interval=config.sweep_interval,
        default_options=config.adapter_defaults(),
    )


def _run(coro: Coroutine[Any, Any, int]) -> int:
    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        click.echo("Interrupted.", err=True)
        return 130


# ------------------------------------------------------------------ #
# duet new
# ------------------------------------------------------------------ #


@click.command()
@click.option(
    "--cwd",
    type=click.Path(path_type=Path, file_okay=False, exists=True),
    default=None,
    help="Working directory for the agent (default: config default_cwd).",
)
@click.option(
    "--cli",
    "cli_kind",
    type=click.Choice(["claude", "codex"]),
    default=None,
    help="Agent CLI to drive (default: config default_cli).",
)
@click.pass_obj
def new(config: DuetConfig, cwd: Path | None, cli_kind: str | None) -> None:
    """Create an empty session and print its id."""

    async def _main() -> int:
        registry = _open_registry(config)
        try:
            await registry.load()
            session = await registry.create(
                CreateOptions(
                    cwd=str((cwd or config.default_cwd).resolve()),
                    cli_kind=cli_kind or config.default_cli,
                )
            )
            click.echo(session.id)
            return 0
        finally:
            await registry.close()

    raise SystemExit(_run(_main()))


# ------------------------------------------------------------------ #
# duet ls / show
# ------------------------------------------------------------------ #


@click.command()
@click.pass_obj
def ls(config: DuetConfig) -> None:
    """List sessions."""

    async def _main() -> int:
        registry = _open_registry(config)
        try:
            await registry.load()
            infos = sorted(registry.list(), key=lambda i: i.created_at)
        finally:
            await registry.close()

        if not infos:
            click.echo("No sessions.")
            return 0
        for info in infos:
            title = info.title
            if len(title) > _TITLE_WIDTH:
                title = title[: _TITLE_WIDTH - 1] + "…"
            click.echo(
                f"{info.id}  {info.cli_kind:<6}  {info.message_count:>4} msg  {title}"
            )
        return 0

    raise SystemExit(_run(_main()))


@click.command()
@click.argument("session_id")
@click.pass_obj
def show(config: DuetConfig, session_id: str) -> None:
    """Print a session's conversation history."""

    async def _main() -> int:
        registry = _open_registry(config)
        try:
            await registry.load()
            session = registry.get(session_id)
            if session is None:
                click.echo(f"Error: session '{session_id}' not found", err=True)
                return 1
            click.echo(f"{session.title or '(untitled)'}  [{session.cli_kind}] {session.cwd}")
            for message in session.messages:
                click.echo(f"\n{message.role}:\n{message.text}")
            return 0
        finally:
            await registry.close()

    raise SystemExit(_run(_main()))


# ------------------------------------------------------------------ #
# duet send
# ------------------------------------------------------------------ #


@click.command()
@click.argument("session_id")
@click.argument("text")
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Give up after this many seconds.",
)
@click.pass_obj
def send(config: DuetConfig, session_id: str, text: str, timeout: float | None) -> None:
    """Send one turn and stream canonical events as JSON lines."""

    async def _main() -> int:
        registry = _open_registry(config)
        try:
            await registry.load()
            session = registry.get(session_id)
            if session is None:
                click.echo(f"Error: session '{session_id}' not found", err=True)
                return 1

            with session.events.listen() as listener:
                await session.send(text)
                try:
                    async with asyncio.timeout(timeout):
                        async for event in listener:
                            click.echo(event_to_json(event))
                            if event.type in TERMINAL_TYPES:
                                return 1 if isinstance(event, ResponseFailed) else 0
                except TimeoutError:
                    click.echo(f"Error: no response within {timeout:g}s", err=True)
                    return 1
            return 0
        finally:
            await registry.close()

    raise SystemExit(_run(_main()))


# ------------------------------------------------------------------ #
# duet rm
# ------------------------------------------------------------------ #


@click.command()
@click.argument("session_id")
@click.pass_obj
def rm(config: DuetConfig, session_id: str) -> None:
    """Destroy a session and delete its file."""

    async def _main() -> int:
        registry = _open_registry(config)
        try:
            await registry.load()
            if session_id not in registry:
                click.echo(f"Error: session '{session_id}' not found", err=True)
                return 1
            await registry.destroy(session_id)
            click.echo(f"Removed {session_id}")
            return 0
        finally:
            await registry.close()

    raise SystemExit(_run(_main()))
