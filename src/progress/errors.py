"""
Error taxonomy for the learner-progress core.

Every error is raised synchronously before any state is touched, so a
caller that catches one can assume the session is exactly as it was.
"""

from __future__ import annotations


class ProgressError(Exception):
    """Base class for all learner-progress errors."""

    pass


class SessionNotFoundError(ProgressError):
    """Raised when no session exists for a (course, learner) pair."""

    def __init__(self, course_id: str, learner_id: str):
        self.course_id = course_id
        self.learner_id = learner_id
        super().__init__(f"No session for course '{course_id}' and learner '{learner_id}'")


class ConceptNotFoundError(ProgressError):
    """Raised when an operation references a concept that does not exist."""

    def __init__(self, concept_name: str | None, where: str = "course"):
        self.concept_name = concept_name
        self.where = where
        super().__init__(f"Concept '{concept_name}' not found in {where}")


class CourseNotFoundError(ProgressError):
    """Raised when a course definition cannot be located."""

    def __init__(self, course_id: str):
        self.course_id = course_id
        super().__init__(f"Course '{course_id}' not found")


class InvalidComprehensionScoreError(ProgressError, ValueError):
    """Raised when an evaluator score falls outside 0-5."""

    def __init__(self, score: object):
        self.score = score
        super().__init__(f"Comprehension score must be an integer in [0, 5], got {score!r}")


class ConcurrentModificationError(ProgressError):
    """Raised when a save is based on a stale copy of the session."""

    def __init__(self, course_id: str, learner_id: str, expected_version: int, actual_version: int):
        self.course_id = course_id
        self.learner_id = learner_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Session {course_id}/{learner_id} was modified concurrently "
            f"(loaded v{expected_version}, stored v{actual_version})"
        )


class InvalidRecordError(ProgressError, ValueError):
    """Raised when a record handed to the store or service is malformed."""

    pass


class PersistenceError(ProgressError):
    """Raised when a stored session document cannot be decoded."""

    pass
