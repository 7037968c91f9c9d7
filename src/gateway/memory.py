"""In-process session gateway holding serialized documents."""

from __future__ import annotations

import threading

from src.gateway.base import SessionGateway
from src.gateway.documents import dump_session, load_session
from src.progress.models import LearningSession


class InMemorySessionGateway(SessionGateway):
    """
    Keeps each session as its serialized document.

    Loads always return a fresh copy, so no caller shares mutable state
    with the gateway or with another caller.
    """

    def __init__(self):
        self._documents: dict[tuple[str, str], dict] = {}
        self._lock = threading.Lock()

    def load(self, course_id: str, learner_id: str) -> LearningSession | None:
        document = self._documents.get((course_id, learner_id))
        return load_session(document) if document is not None else None

    def save(self, session: LearningSession) -> None:
        with self._lock:
            stored = self._documents.get(session.key)
            self.check_version(session, stored["version"] if stored else None)

            document = dump_session(session)
            document["version"] = session.version + 1
            self._documents[session.key] = document
            session.version += 1

    def delete(self, course_id: str, learner_id: str) -> bool:
        with self._lock:
            return self._documents.pop((course_id, learner_id), None) is not None

    def list_sessions(self, learner_id: str | None = None) -> list[LearningSession]:
        sessions = [
            load_session(doc)
            for (_, learner), doc in self._documents.items()
            if learner_id is None or learner == learner_id
        ]
        return sorted(sessions, key=lambda s: s.last_activity_time, reverse=True)
