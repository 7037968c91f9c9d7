"""
Learner progress data model.

One LearningSession per (learner, course) pair owns every ConceptProgress,
ItemProgress and TopicProgress reachable from it. Progress maps are plain
dicts keyed by name; the record-array wire form lives in src.gateway.documents
and never leaks in here.

Mastery rules (fixed policy, not configurable):
- Item mastered at 2 attempts scoring >= 4 (any order)
- Topic mastered at comprehension 5
- Concept completed at >= 80% mastered topics
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal

from src.progress.errors import InvalidComprehensionScoreError

# =============================================================================
# Policy Constants
# =============================================================================

MIN_COMPREHENSION = 0
MAX_COMPREHENSION = 5
SUCCESS_COMPREHENSION = 4
ITEM_MASTERY_SUCCESSES = 2
TOPIC_MASTERY_COMPREHENSION = 5
CONCEPT_COMPLETION_RATIO = 0.8

DEFAULT_EASE_FACTOR = 2.5

SPECIAL_QUESTION_TYPES = ("elaboration", "connection", "high-level")
CONVERSATION_ROLES = ("user", "assistant")

# High-level topic scores are kept in a reserved concept bucket
HIGH_LEVEL_BUCKET = "high-level"


def validate_comprehension(score: object) -> int:
    """
    Check an evaluator score before it is allowed near session state.

    Args:
        score: Raw comprehension score

    Returns:
        The score as an int

    Raises:
        InvalidComprehensionScoreError: if not an integer in [0, 5]
    """
    if isinstance(score, bool) or not isinstance(score, int):
        raise InvalidComprehensionScoreError(score)
    if not MIN_COMPREHENSION <= score <= MAX_COMPREHENSION:
        raise InvalidComprehensionScoreError(score)
    return score


# =============================================================================
# Phase
# =============================================================================


class Phase(str, Enum):
    """Learning phases, in forward order."""

    INITIALIZATION = "initialization"
    HIGH_LEVEL = "high-level"
    CONCEPT_LEARNING = "concept-learning"
    MEMORIZATION = "memorization"
    DRAWING_CONNECTIONS = "drawing-connections"

    @property
    def is_concept_scoped(self) -> bool:
        """Phases that operate on a single concept."""
        return self in (Phase.CONCEPT_LEARNING, Phase.MEMORIZATION)

    @property
    def is_terminal(self) -> bool:
        return self is Phase.DRAWING_CONNECTIONS


# =============================================================================
# Attempts
# =============================================================================


@dataclass
class Evaluation:
    """Evaluator verdict for one learner answer."""

    comprehension: int
    response: str = ""
    target_topic: str | None = None


@dataclass
class Attempt:
    """A question, the learner's answer and the evaluator's verdict."""

    question: str
    user_answer: str
    ai_response: Evaluation
    timestamp: datetime | None = None

    @property
    def comprehension(self) -> int:
        return self.ai_response.comprehension

    @property
    def target_topic(self) -> str | None:
        return self.ai_response.target_topic

    @classmethod
    def from_dict(cls, data: dict) -> Attempt:
        """Build from the evaluator's camelCase payload."""
        ai = data.get("aiResponse") or data.get("ai_response") or {}
        return cls(
            question=data.get("question", ""),
            user_answer=data.get("userAnswer", data.get("user_answer", "")),
            ai_response=Evaluation(
                comprehension=ai.get("comprehension"),
                response=ai.get("response", ""),
                target_topic=ai.get("targetTopic", ai.get("target_topic")),
            ),
        )


@dataclass
class SpecialQuestion:
    """An elaboration/connection/high-level question already asked."""

    type: Literal["elaboration", "connection", "high-level"]
    question: str
    answer: str = ""
    target_item: str | None = None
    connected_item: str | None = None
    timestamp: datetime | None = None


@dataclass
class ConversationEntry:
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime


# =============================================================================
# Progress
# =============================================================================


@dataclass
class SchedulingUpdate:
    """Timing fields produced by the scheduler for one attempt."""

    ease_factor: float
    interval: int
    last_review_position: int
    next_due_position: int
    success_count: int


@dataclass
class ItemProgress:
    """Memorization progress for one flashcard item."""

    item_name: str
    attempts: list[Attempt] = field(default_factory=list)
    success_count: int = 0
    ease_factor: float = DEFAULT_EASE_FACTOR
    interval: int = 0
    last_review_position: int = 0
    next_due_position: int = 0

    @property
    def is_mastered(self) -> bool:
        return self.success_count >= ITEM_MASTERY_SUCCESSES

    @property
    def average_comprehension(self) -> float | None:
        """Mean score across all attempts (None if never attempted)."""
        if not self.attempts:
            return None
        return sum(a.comprehension for a in self.attempts) / len(self.attempts)

    @property
    def last_comprehension(self) -> int | None:
        if not self.attempts:
            return None
        return self.attempts[-1].comprehension

    def apply_scheduling(self, update: SchedulingUpdate) -> None:
        self.ease_factor = update.ease_factor
        self.interval = update.interval
        self.last_review_position = update.last_review_position
        self.next_due_position = update.next_due_position
        self.success_count = update.success_count


@dataclass
class TopicProgress:
    """Discussion progress for one topic; comprehension only ever rises."""

    topic_name: str
    current_comprehension: int = 0
    attempts: list[Attempt] = field(default_factory=list)

    @property
    def is_mastered(self) -> bool:
        return self.current_comprehension >= TOPIC_MASTERY_COMPREHENSION


@dataclass
class ConceptProgress:
    """Everything the learner has done inside one concept."""

    concept_name: str
    items_progress: dict[str, ItemProgress] = field(default_factory=dict)
    topic_progress: dict[str, TopicProgress] = field(default_factory=dict)
    special_questions_asked: list[SpecialQuestion] = field(default_factory=list)
    global_position_counter: int = 0


# =============================================================================
# Session
# =============================================================================


@dataclass
class LearningSession:
    """One learner's progress through one course."""

    course_id: str
    learner_id: str
    start_time: datetime
    last_activity_time: datetime
    current_phase: Phase = Phase.INITIALIZATION
    current_concept: str | None = None
    concepts_progress: dict[str, ConceptProgress] = field(default_factory=dict)
    conversation_history: list[ConversationEntry] = field(default_factory=list)
    existing_understanding: str = ""
    time_available: str = ""
    # Optimistic concurrency token, bumped by the gateway on every save
    version: int = 0

    @property
    def key(self) -> tuple[str, str]:
        return (self.course_id, self.learner_id)

    def concept(self, concept_name: str) -> ConceptProgress | None:
        return self.concepts_progress.get(concept_name)
