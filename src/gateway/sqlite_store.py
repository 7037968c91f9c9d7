"""
SQLite session persistence.

Each (course_id, learner_id) row holds the full session document as JSON
plus its version. The version check and the write are a single statement,
so concurrent writers cannot both succeed against the same version.

Database location: <data_dir>/sessions.db
"""

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path

from loguru import logger

from src.gateway.base import SessionGateway
from src.gateway.documents import dump_session, load_session
from src.progress.errors import PersistenceError
from src.progress.models import LearningSession


class SqliteSessionGateway(SessionGateway):
    """SQLite-backed session storage."""

    def __init__(self, db_path: Path):
        """
        Initialize the gateway.

        Args:
            db_path: Database file (":memory:" is not supported; use InMemorySessionGateway)
        """
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()
        self._init_schema()

        logger.info(f"SqliteSessionGateway initialized at {self.db_path}")

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_schema(self) -> None:
        """Initialize database schema."""
        with self.conn:
            self.conn.execute("PRAGMA journal_mode=WAL")
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS learning_sessions (
                    course_id TEXT NOT NULL,
                    learner_id TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    document TEXT NOT NULL,
                    updated_at TIMESTAMP NOT NULL,
                    PRIMARY KEY (course_id, learner_id)
                )
            """)
            self.conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_learning_sessions_learner
                ON learning_sessions(learner_id)
            """)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # =========================================================================
    # Gateway Operations
    # =========================================================================

    def load(self, course_id: str, learner_id: str) -> LearningSession | None:
        row = self.conn.execute(
            "SELECT document FROM learning_sessions WHERE course_id = ? AND learner_id = ?",
            (course_id, learner_id),
        ).fetchone()
        if row is None:
            return None
        return self._decode(row["document"])

    def save(self, session: LearningSession) -> None:
        new_version = session.version + 1
        document = dump_session(session)
        document["version"] = new_version
        payload = json.dumps(document)
        now = datetime.now().isoformat()

        with self._lock, self.conn:
            if session.version == 0:
                try:
                    self.conn.execute(
                        """
                        INSERT INTO learning_sessions (course_id, learner_id, version, document, updated_at)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (session.course_id, session.learner_id, new_version, payload, now),
                    )
                except sqlite3.IntegrityError:
                    self.check_version(session, self._stored_version(session))
                    raise
            else:
                cursor = self.conn.execute(
                    """
                    UPDATE learning_sessions
                    SET version = ?, document = ?, updated_at = ?
                    WHERE course_id = ? AND learner_id = ? AND version = ?
                    """,
                    (new_version, payload, now, session.course_id, session.learner_id, session.version),
                )
                if cursor.rowcount == 0:
                    self.check_version(session, self._stored_version(session))

        session.version = new_version
        logger.debug(f"Saved session {session.course_id}/{session.learner_id} v{new_version}")

    def delete(self, course_id: str, learner_id: str) -> bool:
        with self._lock, self.conn:
            cursor = self.conn.execute(
                "DELETE FROM learning_sessions WHERE course_id = ? AND learner_id = ?",
                (course_id, learner_id),
            )
        return cursor.rowcount > 0

    def list_sessions(self, learner_id: str | None = None) -> list[LearningSession]:
        if learner_id is None:
            rows = self.conn.execute("SELECT document FROM learning_sessions").fetchall()
        else:
            rows = self.conn.execute(
                "SELECT document FROM learning_sessions WHERE learner_id = ?", (learner_id,)
            ).fetchall()

        sessions = []
        for row in rows:
            try:
                sessions.append(self._decode(row["document"]))
            except PersistenceError as e:
                logger.warning(f"Skipping unreadable session row: {e}")
        return sorted(sessions, key=lambda s: s.last_activity_time, reverse=True)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _stored_version(self, session: LearningSession) -> int | None:
        row = self.conn.execute(
            "SELECT version FROM learning_sessions WHERE course_id = ? AND learner_id = ?",
            (session.course_id, session.learner_id),
        ).fetchone()
        return row["version"] if row else None

    @staticmethod
    def _decode(raw: str) -> LearningSession:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Corrupted session document: {e}") from e
        return load_session(data)
