"""
Flat-file session persistence.

Sessions are stored as JSON files in <data_dir>/sessions/ with naming
{course_id}--{learner_id}.json (both parts URL-quoted). Files are written
to a temporary sibling and renamed into place, so a reader never sees a
half-written session.

The version check and the rename are serialized by a threading.Lock, which
only covers writers inside one process. Two processes saving the same
session can both pass the check and the last rename wins. Use the SQLite
backend (LEARNLOOP_STORAGE_BACKEND=sqlite) when the CLI and a server share
a data directory.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from urllib.parse import quote

from loguru import logger

from src.gateway.base import SessionGateway
from src.gateway.documents import dump_session, load_session
from src.progress.errors import PersistenceError
from src.progress.models import LearningSession


class JsonFileSessionGateway(SessionGateway):
    """One JSON document per (course, learner) pair."""

    def __init__(self, session_dir: Path):
        self.session_dir = session_dir
        self.session_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, course_id: str, learner_id: str) -> Path:
        name = f"{quote(course_id, safe='')}--{quote(learner_id, safe='')}.json"
        return self.session_dir / name

    def _read(self, filepath: Path) -> dict | None:
        if not filepath.exists():
            return None
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Corrupted session file {filepath}: {e}") from e

    def load(self, course_id: str, learner_id: str) -> LearningSession | None:
        """Load a specific session."""
        data = self._read(self._path(course_id, learner_id))
        return load_session(data) if data is not None else None

    def save(self, session: LearningSession) -> None:
        """Save session state to disk."""
        filepath = self._path(session.course_id, session.learner_id)

        with self._lock:
            stored = self._read(filepath)
            self.check_version(session, stored.get("version", 0) if stored else None)

            document = dump_session(session)
            document["version"] = session.version + 1

            fd, tmp_name = tempfile.mkstemp(dir=self.session_dir, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(document, f, indent=2)
                os.replace(tmp_name, filepath)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise

            session.version += 1

        logger.debug(f"Saved session {session.course_id}/{session.learner_id} v{session.version} to {filepath}")

    def delete(self, course_id: str, learner_id: str) -> bool:
        """Delete a session file."""
        filepath = self._path(course_id, learner_id)
        with self._lock:
            if filepath.exists():
                filepath.unlink()
                return True
        return False

    def list_sessions(self, learner_id: str | None = None) -> list[LearningSession]:
        """List stored sessions, skipping unreadable files."""
        sessions = []
        for filepath in self.session_dir.glob("*.json"):
            try:
                session = load_session(self._read(filepath))
            except PersistenceError as e:
                logger.warning(f"Skipping unreadable session file {filepath.name}: {e}")
                continue
            if learner_id is None or session.learner_id == learner_id:
                sessions.append(session)

        return sorted(sessions, key=lambda s: s.last_activity_time, reverse=True)
