"""
Mastery Aggregator: read-only queries over a LearningSession.

Answers "what is mastered, what still needs work" for the phase gates,
the question generators and the dashboard. Never mutates the session.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable

from src.progress.models import (
    CONCEPT_COMPLETION_RATIO,
    HIGH_LEVEL_BUCKET,
    TOPIC_MASTERY_COMPREHENSION,
    ConceptProgress,
    LearningSession,
)

if TYPE_CHECKING:
    from src.course.models import Concept, Course


@dataclass(frozen=True)
class ItemPerformance:
    """An item and its mean comprehension across all attempts."""

    item: str
    average_comprehension: float


@dataclass
class OverallProgress:
    completed_concepts: int = 0
    total_concepts: int = 0
    items_mastered: int = 0
    total_items: int = 0
    current_concept_progress: float = 0.0

    @property
    def overall_completion(self) -> float:
        if self.total_concepts == 0:
            return 0.0
        return self.completed_concepts / self.total_concepts

    def to_dict(self) -> dict:
        return {
            "completedConcepts": self.completed_concepts,
            "totalConcepts": self.total_concepts,
            "itemsMastered": self.items_mastered,
            "totalItems": self.total_items,
            "overallCompletion": self.overall_completion,
            "currentConceptProgress": self.current_concept_progress,
        }


@dataclass
class ProgressSummary:
    """Dashboard payload for one session."""

    course_id: str
    learner_id: str
    current_phase: str
    current_concept: str | None
    topic_progress: dict[str, int] = field(default_factory=dict)
    item_progress: dict[str, dict[str, int]] = field(default_factory=dict)
    overall_progress: OverallProgress = field(default_factory=OverallProgress)

    def to_dict(self) -> dict:
        return {
            "courseId": self.course_id,
            "learnerId": self.learner_id,
            "currentPhase": self.current_phase,
            "currentConcept": self.current_concept,
            "topicProgress": dict(self.topic_progress),
            "itemProgress": {k: dict(v) for k, v in self.item_progress.items()},
            "overallProgress": self.overall_progress.to_dict(),
        }


class MasteryAggregator:
    """Derived mastery picture over a session's progress maps."""

    # =========================================================================
    # Items
    # =========================================================================

    def is_item_mastered(self, session: LearningSession, concept_name: str, item_name: str) -> bool:
        item = self._item(session, concept_name, item_name)
        return item.is_mastered if item else False

    def unmastered_items(
        self,
        session: LearningSession,
        concept_name: str,
        all_items: Iterable[str] | None = None,
    ) -> set[str]:
        """
        Items with fewer than two successes.

        Without `all_items` only attempted items are considered; with it,
        never-attempted items count as unmastered too.
        """
        concept = session.concept(concept_name)
        progress = concept.items_progress if concept else {}
        names = set(progress) if all_items is None else set(all_items) | set(progress)
        return {name for name in names if name not in progress or not progress[name].is_mastered}

    def struggling_items(
        self,
        session: LearningSession,
        concept_name: str,
        threshold: float = 2,
    ) -> list[ItemPerformance]:
        """Attempted items with mean comprehension <= threshold, weakest first."""
        performances = [
            p for p in self._performances(session, concept_name) if p.average_comprehension <= threshold
        ]
        return sorted(performances, key=lambda p: (p.average_comprehension, p.item))

    def well_performing_items(
        self,
        session: LearningSession,
        concept_name: str,
        threshold: float = 4,
    ) -> list[ItemPerformance]:
        """Attempted items with mean comprehension >= threshold, strongest first."""
        performances = [
            p for p in self._performances(session, concept_name) if p.average_comprehension >= threshold
        ]
        return sorted(performances, key=lambda p: (-p.average_comprehension, p.item))

    def items_mastered(self, session: LearningSession, course: Course) -> int:
        return sum(
            1
            for concept in course.concepts
            for item in concept.items
            if self.is_item_mastered(session, concept.name, item)
        )

    # =========================================================================
    # Topics
    # =========================================================================

    def is_topic_mastered(self, session: LearningSession, concept_name: str, topic_name: str) -> bool:
        concept = session.concept(concept_name)
        topic = concept.topic_progress.get(topic_name) if concept else None
        return topic.is_mastered if topic else False

    def unmastered_topics(
        self,
        session: LearningSession,
        concept_name: str,
        all_topics: Iterable[str],
    ) -> set[str]:
        """Topics below comprehension 5, including never-attempted ones."""
        comprehension = self.topic_comprehension_map(session, concept_name, all_topics)
        return {t for t, score in comprehension.items() if score < TOPIC_MASTERY_COMPREHENSION}

    def topic_comprehension_map(
        self,
        session: LearningSession,
        concept_name: str,
        all_topics: Iterable[str],
    ) -> dict[str, int]:
        """Every requested topic mapped to its comprehension (0 if untouched)."""
        concept = session.concept(concept_name)
        progress = concept.topic_progress if concept else {}
        return {
            topic: progress[topic].current_comprehension if topic in progress else 0
            for topic in all_topics
        }

    def high_level_comprehension(self, session: LearningSession, course: Course) -> dict[str, int]:
        return self.topic_comprehension_map(session, HIGH_LEVEL_BUCKET, course.high_level_topics)

    # =========================================================================
    # Concepts & Session
    # =========================================================================

    def concept_completion_rate(self, session: LearningSession, concept: Concept) -> float:
        """Mastered topics / total topics in the concept (0.0 for topic-less concepts)."""
        if not concept.topics:
            return 0.0
        scores = self.topic_comprehension_map(session, concept.name, concept.topics)
        mastered = sum(1 for score in scores.values() if score >= TOPIC_MASTERY_COMPREHENSION)
        return mastered / len(scores)

    def is_concept_completed(self, session: LearningSession, concept: Concept) -> bool:
        if not concept.topics:
            return False
        return self.concept_completion_rate(session, concept) >= CONCEPT_COMPLETION_RATIO

    def overall_session_progress(self, session: LearningSession, course: Course) -> float:
        """Completed concepts / total concepts."""
        if not course.concepts:
            return 0.0
        completed = sum(1 for c in course.concepts if self.is_concept_completed(session, c))
        return completed / len(course.concepts)

    def progress_summary(self, session: LearningSession, course: Course) -> ProgressSummary:
        """Build the dashboard payload: per-topic scores, per-item state, totals."""
        summary = ProgressSummary(
            course_id=session.course_id,
            learner_id=session.learner_id,
            current_phase=session.current_phase.value,
            current_concept=session.current_concept,
        )

        for topic, score in self.high_level_comprehension(session, course).items():
            summary.topic_progress[f"{HIGH_LEVEL_BUCKET}:{topic}"] = score

        overall = summary.overall_progress
        overall.total_concepts = len(course.concepts)
        overall.total_items = course.total_items

        for concept in course.concepts:
            for topic, score in self.topic_comprehension_map(session, concept.name, concept.topics).items():
                summary.topic_progress[f"{concept.name}:{topic}"] = score

            progress = session.concept(concept.name)
            if progress is not None:
                for item_name, item in progress.items_progress.items():
                    summary.item_progress[f"{concept.name}:{item_name}"] = {
                        "successCount": item.success_count,
                        "comprehension": item.last_comprehension or 0,
                    }

            if self.is_concept_completed(session, concept):
                overall.completed_concepts += 1
            if concept.name == session.current_concept:
                overall.current_concept_progress = self.concept_completion_rate(session, concept)

        overall.items_mastered = self.items_mastered(session, course)
        return summary

    # =========================================================================
    # Helpers
    # =========================================================================

    def _item(self, session: LearningSession, concept_name: str, item_name: str):
        concept: ConceptProgress | None = session.concept(concept_name)
        return concept.items_progress.get(item_name) if concept else None

    def _performances(self, session: LearningSession, concept_name: str) -> list[ItemPerformance]:
        concept = session.concept(concept_name)
        if concept is None:
            return []
        return [
            ItemPerformance(item=name, average_comprehension=item.average_comprehension)
            for name, item in concept.items_progress.items()
            if item.attempts
        ]
