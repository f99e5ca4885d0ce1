"""One JSON file per session in a data directory."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import ValidationError

from duet.session.models import SessionMeta

logger = logging.getLogger(__name__)


class MetaStore:
    """Reads and writes ``<data_dir>/<session id>.json``.

    The directory is created on demand; its absence is never an error.
    """

    def __init__(self, data_dir: Path | str) -> None:
        self._data_dir = Path(data_dir).expanduser()

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def path_for(self, session_id: str) -> Path:
        return self._data_dir / f"{session_id}.json"

    def save(self, meta: SessionMeta) -> Path:
        """Write *meta* atomically.  Raises ``OSError`` on failure."""
        self._data_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(meta.id)
        tmp = path.with_name(f".{path.name}.tmp")
        tmp.write_text(meta.dump(), encoding="utf-8")
        os.replace(tmp, path)
        return path

    def load_all(self) -> list[SessionMeta]:
        """Load every readable, valid session file; skip the rest."""
        if not self._data_dir.is_dir():
            return []

        results: list[SessionMeta] = []
        for path in sorted(self._data_dir.glob("*.json")):
            try:
                raw = path.read_text(encoding="utf-8")
                results.append(SessionMeta.model_validate_json(raw))
            except (OSError, UnicodeDecodeError, ValidationError) as exc:
                logger.warning("skipping unreadable session file %s: %s", path.name, exc)
        return results

    def delete(self, session_id: str) -> None:
        self.path_for(session_id).unlink(missing_ok=True)
