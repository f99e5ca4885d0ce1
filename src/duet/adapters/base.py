"""Shared adapter plumbing: line reading, call ids, subprocess helpers."""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from duet.adapters.options import AdapterOptions
from duet.events import CanonicalEvent

logger = logging.getLogger(__name__)

#: Bytes requested per read from a subprocess pipe.  Lines may be far
#: longer than this; the reader stitches them back together.
_CHUNK_SIZE = 65_536

#: Bytes of stderr kept for failure messages.
_STDERR_TAIL_BYTES = 8_192

EmitFn = Callable[[CanonicalEvent], None]
InitFn = Callable[[str], None]


# ------------------------------------------------------------------ #
# Line reader
# ------------------------------------------------------------------ #


class LineReader:
    """Turn an arbitrarily chunked byte stream into trimmed, non-blank lines.

    Bytes are decoded incrementally as UTF-8 with replacement, so a
    multi-byte character split across two chunks still decodes and
    malformed input never raises.  The unterminated tail is held until
    the next chunk; :meth:`close` flushes it and fires ``on_end`` once.
    """

    def __init__(
        self,
        on_line: Callable[[str], None],
        on_end: Callable[[], None] | None = None,
    ) -> None:
        self._on_line = on_line
        self._on_end = on_end
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._partial = ""
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def feed(self, chunk: bytes) -> None:
        if self._closed or not chunk:
            return
        text = self._decoder.decode(chunk)
        if "\n" not in text:
            self._partial += text
            return
        *lines, self._partial = (self._partial + text).split("\n")
        for line in lines:
            self._emit(line)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        tail = self._partial + self._decoder.decode(b"", final=True)
        self._partial = ""
        self._emit(tail)
        if self._on_end is not None:
            self._on_end()

    def _emit(self, line: str) -> None:
        stripped = line.strip()
        if stripped:
            self._on_line(stripped)


async def pump(
    stream: asyncio.StreamReader,
    reader: LineReader,
    chunk_size: int = _CHUNK_SIZE,
) -> None:
    """Feed *stream* into *reader* until EOF; always closes the reader."""
    try:
        while True:
            chunk = await stream.read(chunk_size)
            if not chunk:
                break
            reader.feed(chunk)
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        logger.error("error reading subprocess stdout: %s", exc)
    finally:
        reader.close()


async def collect_tail(
    stream: asyncio.StreamReader | None,
    limit: int = _STDERR_TAIL_BYTES,
) -> bytes:
    """Drain *stream* to EOF, keeping only the last *limit* bytes."""
    if stream is None:
        return b""
    tail = b""
    try:
        while True:
            chunk = await stream.read(_CHUNK_SIZE)
            if not chunk:
                break
            tail = (tail + chunk)[-limit:]
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        logger.debug("error reading subprocess stderr: %s", exc)
    return tail


def format_stderr_preview(stderr_text: str, max_lines: int = 5) -> str:
    """Extract and format the last N non-empty lines from stderr output."""
    lines = [line for line in stderr_text.split("\n") if line.strip()]
    last = lines[-max_lines:] if len(lines) > max_lines else lines
    return "\n  ".join(last)


def describe_exit(program: str, returncode: int, stderr_bytes: bytes = b"") -> str:
    """Human-readable failure message for a non-zero exit."""
    msg = f"{program} process exited with code {returncode}"
    preview = format_stderr_preview(stderr_bytes.decode(errors="replace").strip())
    if preview:
        msg += f"\n  {preview}"
    return msg


def encode_arguments(value: Any) -> str:
    """Compact JSON for a ``function_call`` item's ``arguments``."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def kill_process(proc: asyncio.subprocess.Process | None) -> None:
    """Kill *proc* if it is still running; never raises."""
    if proc is None or proc.returncode is not None:
        return
    with contextlib.suppress(ProcessLookupError, OSError):
        proc.kill()


# ------------------------------------------------------------------ #
# Call ids
# ------------------------------------------------------------------ #


class CallIdGenerator:
    """Produces ``call_<epoch-ms>_<n>`` ids; one counter per instance."""

    def __init__(self) -> None:
        self._counter = 0

    def __call__(self) -> str:
        self._counter += 1
        return f"call_{int(time.time() * 1000)}_{self._counter}"


# ------------------------------------------------------------------ #
# Adapter contract
# ------------------------------------------------------------------ #


@dataclass
class AdapterConfig:
    """What an adapter needs to know about its session."""

    cwd: str
    cli_session_id: str | None = None
    options: AdapterOptions | None = None


@runtime_checkable
class Adapter(Protocol):
    """Capability set shared by every agent-kind adapter."""

    @property
    def killed(self) -> bool: ...

    async def send(self, text: str) -> None:
        """Submit one turn of user text."""
        ...

    def kill(self) -> None:
        """Terminate the subprocess and suppress any further events."""
        ...
