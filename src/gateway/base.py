"""
Session Gateway contract.

A gateway loads and saves whole sessions; there is no field-level
persistence. Each stored session carries a version number: a save is
accepted only if the session was loaded at the currently stored version,
so a stale writer gets ConcurrentModificationError instead of silently
overwriting newer progress.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from loguru import logger

from src.progress.errors import ConcurrentModificationError, SessionNotFoundError
from src.progress.models import LearningSession


class SessionGateway(ABC):
    """Durable storage for LearningSession aggregates."""

    @abstractmethod
    def load(self, course_id: str, learner_id: str) -> LearningSession | None:
        """Load a session, or None if the pair has none."""

    @abstractmethod
    def save(self, session: LearningSession) -> None:
        """
        Persist the whole session and bump its version.

        Raises:
            ConcurrentModificationError: if the stored version moved on
        """

    @abstractmethod
    def delete(self, course_id: str, learner_id: str) -> bool:
        """Remove a session; returns False if there was none."""

    @abstractmethod
    def list_sessions(self, learner_id: str | None = None) -> list[LearningSession]:
        """All stored sessions, optionally for one learner, most recent first."""

    def require(self, course_id: str, learner_id: str) -> LearningSession:
        """
        Load a session that must exist.

        Raises:
            SessionNotFoundError: if the pair has no session
        """
        session = self.load(course_id, learner_id)
        if session is None:
            raise SessionNotFoundError(course_id, learner_id)
        return session

    @staticmethod
    def check_version(session: LearningSession, stored_version: int | None) -> None:
        """Reject the save unless the session was loaded at the stored version."""
        actual = stored_version or 0
        if actual != session.version:
            logger.warning(
                f"Rejected stale save for {session.course_id}/{session.learner_id}: "
                f"v{session.version} vs stored v{actual}"
            )
            raise ConcurrentModificationError(
                session.course_id, session.learner_id, session.version, actual
            )
