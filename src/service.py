"""
Learning Progress Service.

Composes the progress core for callers such as an HTTP layer or the CLI.
Every mutating call follows the same cycle: load the whole session from
the gateway, validate, mutate in memory, commit once with gateway.save.
Nothing is cached between calls.

Components are passed in explicitly; build_service() wires the defaults
from settings once at process start.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from loguru import logger

from src.course.models import Course
from src.course.repository import CourseRepository
from src.gateway.base import SessionGateway
from src.phases.machine import PhaseGates, PhaseStateMachine, TransitionResult
from src.progress.aggregator import MasteryAggregator, ProgressSummary
from src.progress.errors import InvalidRecordError
from src.progress.models import (
    HIGH_LEVEL_BUCKET,
    Attempt,
    Evaluation,
    ItemProgress,
    LearningSession,
    Phase,
    SpecialQuestion,
    TopicProgress,
    validate_comprehension,
)
from src.progress.store import DEFAULT_CONVERSATION_LIMIT, ProgressStore
from src.scheduling.scheduler import DueCard, PositionScheduler, SchedulerConfig

MANUAL_UPDATE_TEXT = "Progress update"


@dataclass
class ItemScoreUpdate:
    item_name: str
    comprehension: int


@dataclass
class TopicScoreUpdate:
    topic_name: str
    comprehension: int


@dataclass
class ProgressUpdate:
    """Bulk/admin progress change: optional forced phase plus manual scores."""

    phase: Phase | None = None
    concept_name: str | None = None
    item_progress: list[ItemScoreUpdate] = field(default_factory=list)
    topic_progress: list[TopicScoreUpdate] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> ProgressUpdate:
        """
        Build from the camelCase bulk payload.

        Raises:
            InvalidRecordError: if an entry lacks a required key or the phase is unknown
        """
        phase = data.get("phase")
        try:
            phase = Phase(phase) if phase else None
        except ValueError as e:
            raise InvalidRecordError(f"Unknown phase {phase!r}") from e

        return cls(
            phase=phase,
            concept_name=data.get("conceptName"),
            item_progress=[
                ItemScoreUpdate(
                    item_name=_required(entry, "itemName", "itemProgress"),
                    comprehension=_required(entry, "comprehension", "itemProgress"),
                )
                for entry in data.get("itemProgress") or []
            ],
            topic_progress=[
                TopicScoreUpdate(
                    topic_name=_required(entry, "topicName", "topicProgress"),
                    comprehension=_required(entry, "comprehension", "topicProgress"),
                )
                for entry in data.get("topicProgress") or []
            ],
        )


def _required(entry: dict, key: str, section: str):
    try:
        return entry[key]
    except (KeyError, TypeError) as e:
        raise InvalidRecordError(f"{section} entry is missing '{key}': {entry!r}") from e


class LearningProgressService:
    """Session-level operations over the progress core."""

    def __init__(
        self,
        gateway: SessionGateway,
        courses: CourseRepository,
        scheduler_config: SchedulerConfig | None = None,
        gates: PhaseGates | None = None,
        clock: Callable[[], datetime] | None = None,
        conversation_limit: int = DEFAULT_CONVERSATION_LIMIT,
    ):
        self.gateway = gateway
        self.courses = courses
        self.clock = clock or datetime.now
        self.gates = gates or PhaseGates()
        self.store = ProgressStore(clock=self.clock, conversation_limit=conversation_limit)
        self.scheduler = PositionScheduler(self.store, scheduler_config)
        self.aggregator = MasteryAggregator()

    def _machine(self, course: Course) -> PhaseStateMachine:
        return PhaseStateMachine(course, self.aggregator, self.gates, self.clock)

    # =========================================================================
    # Session Lifecycle
    # =========================================================================

    def start_session(
        self,
        course_id: str,
        learner_id: str,
        existing_understanding: str = "",
        time_available: str = "",
    ) -> LearningSession:
        """Return the learner's session for the course, creating it on first use."""
        self.courses.load(course_id)

        session = self.gateway.load(course_id, learner_id)
        if session is not None:
            return session

        now = self.clock()
        session = LearningSession(
            course_id=course_id,
            learner_id=learner_id,
            start_time=now,
            last_activity_time=now,
            existing_understanding=existing_understanding,
            time_available=time_available,
        )
        self.gateway.save(session)
        logger.info(f"Created session for learner '{learner_id}' in course '{course_id}'")
        return session

    def get_session(self, course_id: str, learner_id: str) -> LearningSession:
        return self.gateway.require(course_id, learner_id)

    # =========================================================================
    # Evaluations
    # =========================================================================

    def submit_flashcard_evaluation(
        self,
        course_id: str,
        learner_id: str,
        concept_name: str,
        item_name: str,
        attempt: Attempt,
    ) -> ItemProgress:
        """Record a flashcard attempt, reschedule the item and commit."""
        self.courses.load(course_id).get_concept(concept_name)
        session = self.gateway.require(course_id, learner_id)

        item = self.scheduler.record_review(session, concept_name, item_name, attempt)
        self.gateway.save(session)
        return item

    def submit_topic_evaluation(
        self,
        course_id: str,
        learner_id: str,
        concept_name: str,
        attempt: Attempt,
    ) -> TopicProgress:
        """
        Record a discussion attempt and commit.

        `concept_name` may be the reserved high-level bucket.
        """
        if concept_name != HIGH_LEVEL_BUCKET:
            self.courses.load(course_id).get_concept(concept_name)
        session = self.gateway.require(course_id, learner_id)

        topic = self.store.record_topic_attempt(session, concept_name, attempt)
        self.gateway.save(session)
        return topic

    def record_special_question(
        self,
        course_id: str,
        learner_id: str,
        concept_name: str,
        question: SpecialQuestion,
    ) -> None:
        session = self.gateway.require(course_id, learner_id)
        self.store.record_special_question(session, concept_name, question)
        self.gateway.save(session)

    def add_conversation_entry(self, course_id: str, learner_id: str, role: str, content: str) -> None:
        session = self.gateway.require(course_id, learner_id)
        self.store.add_conversation_entry(session, role, content)
        self.gateway.save(session)

    # =========================================================================
    # Phases
    # =========================================================================

    def request_transition(
        self,
        course_id: str,
        learner_id: str,
        target: Phase | str,
        concept_name: str | None = None,
    ) -> TransitionResult:
        """Gate-checked transition; only an accepted transition is committed."""
        course = self.courses.load(course_id)
        session = self.gateway.require(course_id, learner_id)

        result = self._machine(course).request_transition(session, target, concept_name)
        if result.advanced:
            self.gateway.save(session)
        return result

    def force_transition(
        self,
        course_id: str,
        learner_id: str,
        target: Phase | str,
        concept_name: str | None = None,
    ) -> TransitionResult:
        course = self.courses.load(course_id)
        session = self.gateway.require(course_id, learner_id)

        result = self._machine(course).force_transition(session, target, concept_name)
        self.gateway.save(session)
        return result

    def apply_progress_update(self, course_id: str, learner_id: str, update: ProgressUpdate) -> LearningSession:
        """
        Apply a bulk progress change in one commit.

        Every score and concept is validated before the session is touched.
        Item scores go through the scheduler like any other attempt; topic
        scores without a concept land in the high-level bucket.
        """
        course = self.courses.load(course_id)
        session = self.gateway.require(course_id, learner_id)

        for entry in [*update.item_progress, *update.topic_progress]:
            validate_comprehension(entry.comprehension)
        if update.concept_name is not None:
            course.get_concept(update.concept_name)
        if update.item_progress and update.concept_name is None:
            raise InvalidRecordError("Item progress updates require a concept name")

        if update.phase is not None:
            self._machine(course).force_transition(session, update.phase, update.concept_name)

        for entry in update.item_progress:
            self.scheduler.record_review(
                session, update.concept_name, entry.item_name, _manual_attempt(entry.comprehension)
            )

        topic_bucket = update.concept_name or HIGH_LEVEL_BUCKET
        for entry in update.topic_progress:
            self.store.record_topic_attempt(
                session, topic_bucket, _manual_attempt(entry.comprehension, entry.topic_name)
            )

        self.gateway.save(session)
        logger.info(
            f"Applied manual progress update to {course_id}/{learner_id}: "
            f"{len(update.item_progress)} item(s), {len(update.topic_progress)} topic(s)"
        )
        return session

    # =========================================================================
    # Reads
    # =========================================================================

    def progress_summary(self, course_id: str, learner_id: str) -> ProgressSummary:
        course = self.courses.load(course_id)
        session = self.gateway.require(course_id, learner_id)
        return self.aggregator.progress_summary(session, course)

    def due_queue(self, course_id: str, learner_id: str, concept_name: str) -> list[DueCard]:
        concept = self.courses.load(course_id).get_concept(concept_name)
        session = self.gateway.require(course_id, learner_id)
        return self.scheduler.due_queue(session, concept_name, concept.items)

    def next_flashcard(self, course_id: str, learner_id: str, concept_name: str) -> DueCard | None:
        queue = self.due_queue(course_id, learner_id, concept_name)
        return queue[0] if queue else None


def _manual_attempt(comprehension: int, target_topic: str | None = None) -> Attempt:
    return Attempt(
        question=MANUAL_UPDATE_TEXT,
        user_answer=MANUAL_UPDATE_TEXT,
        ai_response=Evaluation(
            comprehension=comprehension,
            response="Progress manually updated",
            target_topic=target_topic,
        ),
    )


def build_service(settings=None) -> LearningProgressService:
    """Wire a service from settings (call once at process start)."""
    from config import get_settings
    from src.gateway import create_gateway

    settings = settings or get_settings()
    return LearningProgressService(
        gateway=create_gateway(settings),
        courses=CourseRepository(settings.resolved_course_dir),
        scheduler_config=SchedulerConfig.from_settings(settings),
        gates=PhaseGates.from_settings(settings),
        conversation_limit=settings.conversation_history_limit,
    )
