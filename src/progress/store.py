"""
Progress Store: mutation operations over a LearningSession.

Pure in-memory state transitions; persistence is the gateway's job.
Every operation validates its input before touching the session so a
rejected call leaves the aggregate exactly as it was.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Callable

from loguru import logger

from src.progress.errors import ConceptNotFoundError, InvalidRecordError
from src.progress.models import (
    CONVERSATION_ROLES,
    SPECIAL_QUESTION_TYPES,
    SUCCESS_COMPREHENSION,
    Attempt,
    ConceptProgress,
    ConversationEntry,
    ItemProgress,
    LearningSession,
    SchedulingUpdate,
    SpecialQuestion,
    TopicProgress,
    validate_comprehension,
)

DEFAULT_CONVERSATION_LIMIT = 200


class ProgressStore:
    """
    Owns the mutation rules for per-concept progress.

    Handles:
    - Item (flashcard) attempts and their scheduling fields
    - Topic attempts with max-retained comprehension
    - Special-question log and the bounded conversation log
    - The per-concept logical clock
    """

    def __init__(
        self,
        clock: Callable[[], datetime] | None = None,
        conversation_limit: int = DEFAULT_CONVERSATION_LIMIT,
    ):
        """
        Initialize the store.

        Args:
            clock: Source of timestamps (defaults to datetime.now)
            conversation_limit: Maximum conversation entries kept per session
        """
        self.clock = clock or datetime.now
        self.conversation_limit = conversation_limit

    # =========================================================================
    # Concept Entries
    # =========================================================================

    def ensure_concept(self, session: LearningSession, concept_name: str) -> ConceptProgress:
        """Get the concept's progress, creating an empty entry on first touch."""
        progress = session.concepts_progress.get(concept_name)
        if progress is None:
            progress = ConceptProgress(concept_name=concept_name)
            session.concepts_progress[concept_name] = progress
            logger.debug(f"Created progress entry for concept '{concept_name}'")
        return progress

    def require_concept(self, session: LearningSession, concept_name: str) -> ConceptProgress:
        progress = session.concepts_progress.get(concept_name)
        if progress is None:
            raise ConceptNotFoundError(concept_name, where="session")
        return progress

    # =========================================================================
    # Item Attempts
    # =========================================================================

    def record_item_attempt(
        self,
        session: LearningSession,
        concept_name: str,
        item_name: str,
        attempt: Attempt,
        scheduling: SchedulingUpdate | None = None,
    ) -> ItemProgress:
        """
        Append a memorization attempt to an item's history.

        With a scheduling update, its fields overwrite the item's timing and
        success count verbatim. Without one, success_count only increments on
        a score >= 4 and timing fields are left for the scheduler.

        Args:
            session: Session to mutate
            concept_name: Concept containing the item
            item_name: Flashcard item name
            attempt: Evaluated attempt
            scheduling: Optional scheduler output for this attempt

        Returns:
            The updated ItemProgress

        Raises:
            InvalidComprehensionScoreError: if the score is outside [0, 5]
            ValueError: if the scheduling update breaks the due-position invariant
        """
        score = validate_comprehension(attempt.comprehension)
        if scheduling is not None:
            _check_scheduling(scheduling)

        concept = self.ensure_concept(session, concept_name)
        item = concept.items_progress.get(item_name)
        if item is None:
            item = ItemProgress(item_name=item_name)
            concept.items_progress[item_name] = item

        item.attempts.append(self._stamped(attempt))

        if scheduling is not None:
            item.apply_scheduling(scheduling)
        elif score >= SUCCESS_COMPREHENSION:
            item.success_count += 1

        self.touch(session)
        logger.debug(
            f"Item attempt {concept_name}/{item_name}: score={score}, "
            f"successes={item.success_count}, due={item.next_due_position}"
        )
        return item

    # =========================================================================
    # Topic Attempts
    # =========================================================================

    def record_topic_attempt(
        self,
        session: LearningSession,
        concept_name: str,
        attempt: Attempt,
    ) -> TopicProgress:
        """
        Append a discussion attempt under its target topic.

        current_comprehension becomes max(current, score); it never drops.

        Raises:
            InvalidComprehensionScoreError: if the score is outside [0, 5]
            InvalidRecordError: if the attempt names no target topic
        """
        score = validate_comprehension(attempt.comprehension)
        topic_name = attempt.target_topic
        if not topic_name:
            raise InvalidRecordError("Topic attempts must name a target topic")

        concept = self.ensure_concept(session, concept_name)
        topic = concept.topic_progress.get(topic_name)
        if topic is None:
            topic = TopicProgress(topic_name=topic_name)
            concept.topic_progress[topic_name] = topic

        topic.attempts.append(self._stamped(attempt))
        topic.current_comprehension = max(topic.current_comprehension, score)

        self.touch(session)
        logger.debug(
            f"Topic attempt {concept_name}/{topic_name}: score={score}, "
            f"current={topic.current_comprehension}"
        )
        return topic

    # =========================================================================
    # Special Questions & Conversation
    # =========================================================================

    def record_special_question(
        self,
        session: LearningSession,
        concept_name: str,
        question: SpecialQuestion,
    ) -> None:
        """
        Log a special question so it is not asked again.

        Raises:
            InvalidRecordError: if the question type or text is malformed
            ConceptNotFoundError: if the concept has no recorded attempts yet
        """
        _check_special_question(question)
        concept = self.require_concept(session, concept_name)
        if question.timestamp is None:
            question = replace(question, timestamp=self.clock())
        concept.special_questions_asked.append(question)
        self.touch(session)

    def add_conversation_entry(self, session: LearningSession, role: str, content: str) -> None:
        """Append to the conversation log, dropping the oldest entries past the limit."""
        if role not in CONVERSATION_ROLES:
            raise InvalidRecordError(f"Unknown conversation role: {role!r}")
        if not isinstance(content, str):
            raise InvalidRecordError(f"Conversation content must be a string, got {type(content).__name__}")

        session.conversation_history.append(
            ConversationEntry(role=role, content=content, timestamp=self.clock())
        )
        overflow = len(session.conversation_history) - self.conversation_limit
        if overflow > 0:
            del session.conversation_history[:overflow]
        self.touch(session)

    # =========================================================================
    # Logical Clock
    # =========================================================================

    def increment_global_position(self, session: LearningSession, concept_name: str) -> int:
        """Advance the concept's logical clock by one and return the new position."""
        concept = self.require_concept(session, concept_name)
        concept.global_position_counter += 1
        return concept.global_position_counter

    def global_position(self, session: LearningSession, concept_name: str) -> int:
        concept = session.concepts_progress.get(concept_name)
        return concept.global_position_counter if concept else 0

    # =========================================================================
    # Reads
    # =========================================================================

    def get_item_scheduling(
        self,
        session: LearningSession,
        concept_name: str,
        item_name: str,
    ) -> SchedulingUpdate | None:
        """Current scheduling fields for an item (None if never attempted)."""
        concept = session.concepts_progress.get(concept_name)
        item = concept.items_progress.get(item_name) if concept else None
        if item is None:
            return None
        return SchedulingUpdate(
            ease_factor=item.ease_factor,
            interval=item.interval,
            last_review_position=item.last_review_position,
            next_due_position=item.next_due_position,
            success_count=item.success_count,
        )

    def last_attempt_comprehension(
        self,
        session: LearningSession,
        concept_name: str,
        item_name: str,
    ) -> int | None:
        concept = session.concepts_progress.get(concept_name)
        item = concept.items_progress.get(item_name) if concept else None
        return item.last_comprehension if item else None

    def touch(self, session: LearningSession) -> None:
        session.last_activity_time = self.clock()

    def _stamped(self, attempt: Attempt) -> Attempt:
        # Copy so the caller's object is never aliased into the session
        return replace(
            attempt,
            ai_response=replace(attempt.ai_response),
            timestamp=attempt.timestamp or self.clock(),
        )


def _check_scheduling(update: SchedulingUpdate) -> None:
    if update.interval < 0 or update.success_count < 0:
        raise ValueError(f"Scheduling fields must be non-negative: {update}")
    if update.next_due_position != update.last_review_position + update.interval:
        raise ValueError(
            "next_due_position must equal last_review_position + interval "
            f"({update.next_due_position} != {update.last_review_position} + {update.interval})"
        )


def _check_special_question(question: SpecialQuestion) -> None:
    if question.type not in SPECIAL_QUESTION_TYPES:
        raise InvalidRecordError(
            f"Unknown special question type {question.type!r} (expected one of {', '.join(SPECIAL_QUESTION_TYPES)})"
        )
    if not isinstance(question.question, str) or not isinstance(question.answer, str):
        raise InvalidRecordError("Special question text and answer must be strings")
    for name in ("target_item", "connected_item"):
        value = getattr(question, name)
        if value is not None and not isinstance(value, str):
            raise InvalidRecordError(f"Special question {name} must be a string, got {type(value).__name__}")
