"""Resumable claude and codex CLI sessions behind one canonical event stream."""

__version__ = "0.1.0"
