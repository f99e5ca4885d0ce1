"""Session metadata models, the JSON store, and the session state machine."""

from duet.session.models import (
    CreateOptions,
    Message,
    SessionInfo,
    SessionMeta,
)
from duet.session.session import Session
from duet.session.store import MetaStore

__all__ = [
    "CreateOptions",
    "Message",
    "MetaStore",
    "Session",
    "SessionInfo",
    "SessionMeta",
]
