"""
Persistence/wire records for a LearningSession.

In memory, progress is keyed by name in dicts; on the wire each map
becomes an array of records that carry their own name field, with
camelCase keys. Conversion happens only here.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from src.progress.errors import PersistenceError
from src.progress.models import (
    Attempt,
    ConceptProgress,
    ConversationEntry,
    Evaluation,
    ItemProgress,
    LearningSession,
    Phase,
    SpecialQuestion,
    TopicProgress,
)


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ========================================
# Records
# ========================================


class EvaluationRecord(_Record):
    comprehension: int = Field(ge=0, le=5)
    response: str = ""
    target_topic: str | None = None


class AttemptRecord(_Record):
    question: str
    user_answer: str
    ai_response: EvaluationRecord
    timestamp: datetime | None = None


class ItemProgressRecord(_Record):
    item_name: str
    attempts: list[AttemptRecord] = Field(default_factory=list)
    success_count: int = Field(default=0, ge=0)
    ease_factor: float = 2.5
    interval: int = Field(default=0, ge=0)
    last_review_position: int = 0
    next_due_position: int = 0


class TopicProgressRecord(_Record):
    topic_name: str
    current_comprehension: int = Field(default=0, ge=0, le=5)
    attempts: list[AttemptRecord] = Field(default_factory=list)


class SpecialQuestionRecord(_Record):
    type: Literal["elaboration", "connection", "high-level"]
    question: str
    answer: str = ""
    target_item: str | None = None
    connected_item: str | None = None
    timestamp: datetime | None = None


class ConceptProgressRecord(_Record):
    concept_name: str
    items_progress: list[ItemProgressRecord] = Field(default_factory=list)
    topic_progress: list[TopicProgressRecord] = Field(default_factory=list)
    special_questions_asked: list[SpecialQuestionRecord] = Field(default_factory=list)
    global_position_counter: int = Field(default=0, ge=0)


class ConversationRecord(_Record):
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime


class SessionDocument(_Record):
    """The whole session as one persisted unit."""

    course_id: str
    learner_id: str
    current_phase: Phase = Phase.INITIALIZATION
    current_concept: str | None = None
    concepts_progress: list[ConceptProgressRecord] = Field(default_factory=list)
    conversation_history: list[ConversationRecord] = Field(default_factory=list)
    start_time: datetime
    last_activity_time: datetime
    existing_understanding: str = ""
    time_available: str = ""
    version: int = Field(default=0, ge=0)


# ========================================
# Conversion
# ========================================


def _attempt_to_record(attempt: Attempt) -> AttemptRecord:
    return AttemptRecord(
        question=attempt.question,
        user_answer=attempt.user_answer,
        ai_response=EvaluationRecord(
            comprehension=attempt.ai_response.comprehension,
            response=attempt.ai_response.response,
            target_topic=attempt.ai_response.target_topic,
        ),
        timestamp=attempt.timestamp,
    )


def _attempt_from_record(record: AttemptRecord) -> Attempt:
    return Attempt(
        question=record.question,
        user_answer=record.user_answer,
        ai_response=Evaluation(
            comprehension=record.ai_response.comprehension,
            response=record.ai_response.response,
            target_topic=record.ai_response.target_topic,
        ),
        timestamp=record.timestamp,
    )


def session_to_document(session: LearningSession) -> SessionDocument:
    concepts = []
    for name, concept in session.concepts_progress.items():
        concepts.append(
            ConceptProgressRecord(
                concept_name=name,
                items_progress=[
                    ItemProgressRecord(
                        item_name=item_name,
                        attempts=[_attempt_to_record(a) for a in item.attempts],
                        success_count=item.success_count,
                        ease_factor=item.ease_factor,
                        interval=item.interval,
                        last_review_position=item.last_review_position,
                        next_due_position=item.next_due_position,
                    )
                    for item_name, item in concept.items_progress.items()
                ],
                topic_progress=[
                    TopicProgressRecord(
                        topic_name=topic_name,
                        current_comprehension=topic.current_comprehension,
                        attempts=[_attempt_to_record(a) for a in topic.attempts],
                    )
                    for topic_name, topic in concept.topic_progress.items()
                ],
                special_questions_asked=[
                    SpecialQuestionRecord(
                        type=q.type,
                        question=q.question,
                        answer=q.answer,
                        target_item=q.target_item,
                        connected_item=q.connected_item,
                        timestamp=q.timestamp,
                    )
                    for q in concept.special_questions_asked
                ],
                global_position_counter=concept.global_position_counter,
            )
        )

    return SessionDocument(
        course_id=session.course_id,
        learner_id=session.learner_id,
        current_phase=session.current_phase,
        current_concept=session.current_concept,
        concepts_progress=concepts,
        conversation_history=[
            ConversationRecord(role=e.role, content=e.content, timestamp=e.timestamp)
            for e in session.conversation_history
        ],
        start_time=session.start_time,
        last_activity_time=session.last_activity_time,
        existing_understanding=session.existing_understanding,
        time_available=session.time_available,
        version=session.version,
    )


def document_to_session(document: SessionDocument) -> LearningSession:
    concepts: dict[str, ConceptProgress] = {}
    for record in document.concepts_progress:
        concepts[record.concept_name] = ConceptProgress(
            concept_name=record.concept_name,
            items_progress={
                item.item_name: ItemProgress(
                    item_name=item.item_name,
                    attempts=[_attempt_from_record(a) for a in item.attempts],
                    success_count=item.success_count,
                    ease_factor=item.ease_factor,
                    interval=item.interval,
                    last_review_position=item.last_review_position,
                    next_due_position=item.next_due_position,
                )
                for item in record.items_progress
            },
            topic_progress={
                topic.topic_name: TopicProgress(
                    topic_name=topic.topic_name,
                    current_comprehension=topic.current_comprehension,
                    attempts=[_attempt_from_record(a) for a in topic.attempts],
                )
                for topic in record.topic_progress
            },
            special_questions_asked=[
                SpecialQuestion(
                    type=q.type,
                    question=q.question,
                    answer=q.answer,
                    target_item=q.target_item,
                    connected_item=q.connected_item,
                    timestamp=q.timestamp,
                )
                for q in record.special_questions_asked
            ],
            global_position_counter=record.global_position_counter,
        )

    return LearningSession(
        course_id=document.course_id,
        learner_id=document.learner_id,
        start_time=document.start_time,
        last_activity_time=document.last_activity_time,
        current_phase=Phase(document.current_phase),
        current_concept=document.current_concept,
        concepts_progress=concepts,
        conversation_history=[
            ConversationEntry(role=e.role, content=e.content, timestamp=e.timestamp)
            for e in document.conversation_history
        ],
        existing_understanding=document.existing_understanding,
        time_available=document.time_available,
        version=document.version,
    )


def dump_session(session: LearningSession) -> dict:
    """Session -> JSON-ready dict with camelCase keys."""
    return session_to_document(session).model_dump(mode="json", by_alias=True)


def load_session(data: dict) -> LearningSession:
    """
    JSON dict -> Session.

    Raises:
        PersistenceError: if the document does not validate
    """
    try:
        document = SessionDocument.model_validate(data)
    except ValidationError as e:
        raise PersistenceError(f"Invalid session document: {e}") from e
    return document_to_session(document)
