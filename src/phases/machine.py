"""
Phase State Machine.

Transitions are caller-requested and gate-checked; nothing auto-advances.

    initialization -> high-level -> concept-learning(X) -> memorization(X)
        -> concept-learning(Y) | high-level | drawing-connections (terminal)

high-level is course-wide and clears the current concept. A concept whose
memorization exit condition already holds is never re-entered through
concept-learning, whichever phase the request comes from.

A request whose gate is not met is a no-op that reports advanced=False.
A request naming a concept the course does not define raises
ConceptNotFoundError. Forced transitions skip every gate and are logged.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from loguru import logger

from src.course.models import Course
from src.progress.aggregator import MasteryAggregator
from src.progress.errors import ConceptNotFoundError
from src.progress.models import HIGH_LEVEL_BUCKET, LearningSession, Phase


@dataclass
class PhaseGates:
    """Every threshold the gates consult, in one place."""

    high_level_min_comprehension: int = 3
    max_unmastered_topic_ratio: float = 0.2
    require_all_items_mastered: bool = True

    @classmethod
    def from_settings(cls, settings) -> PhaseGates:
        return cls(
            high_level_min_comprehension=settings.gate_high_level_min_comprehension,
            max_unmastered_topic_ratio=settings.gate_max_unmastered_topic_ratio,
            require_all_items_mastered=settings.gate_require_all_items_mastered,
        )


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a transition request."""

    phase: Phase
    concept: str | None
    advanced: bool
    forced: bool = False
    reason: str = ""


class PhaseStateMachine:
    """Accepts or rejects phase transitions for sessions of one course."""

    def __init__(
        self,
        course: Course,
        aggregator: MasteryAggregator | None = None,
        gates: PhaseGates | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.course = course
        self.aggregator = aggregator or MasteryAggregator()
        self.gates = gates or PhaseGates()
        self.clock = clock or datetime.now

    def request_transition(
        self,
        session: LearningSession,
        target: Phase | str,
        concept_name: str | None = None,
    ) -> TransitionResult:
        """
        Move the session to `target` if its gate allows it.

        Args:
            session: Session to transition
            target: Requested phase
            concept_name: Concept for concept-scoped phases (defaults to the current one)

        Returns:
            TransitionResult; advanced=False leaves the session untouched

        Raises:
            ConceptNotFoundError: if the concept is missing from the course
        """
        target = Phase(target)
        concept = self._resolve_concept(session, target, concept_name)

        allowed, reason = self._check_gate(session, target, concept)
        if not allowed:
            logger.debug(
                f"Transition {session.current_phase.value} -> {target.value} "
                f"rejected for {session.course_id}/{session.learner_id}: {reason}"
            )
            return TransitionResult(
                phase=session.current_phase,
                concept=session.current_concept,
                advanced=False,
                reason=reason,
            )

        previous = session.current_phase
        self._apply(session, target, concept)
        logger.info(
            f"Session {session.course_id}/{session.learner_id}: "
            f"{previous.value} -> {target.value} (concept={concept})"
        )
        return TransitionResult(phase=target, concept=concept, advanced=True, reason=reason)

    def force_transition(
        self,
        session: LearningSession,
        target: Phase | str,
        concept_name: str | None = None,
    ) -> TransitionResult:
        """Move the session to `target` without consulting any gate."""
        target = Phase(target)
        concept = self._resolve_concept(session, target, concept_name)

        previous = session.current_phase
        self._apply(session, target, concept)
        logger.warning(
            f"Forced transition for session {session.course_id}/{session.learner_id}: "
            f"{previous.value} -> {target.value} (concept={concept}), gates bypassed"
        )
        return TransitionResult(phase=target, concept=concept, advanced=True, forced=True, reason="override")

    def can_transition(
        self,
        session: LearningSession,
        target: Phase | str,
        concept_name: str | None = None,
    ) -> bool:
        target = Phase(target)
        concept = self._resolve_concept(session, target, concept_name)
        return self._check_gate(session, target, concept)[0]

    # =========================================================================
    # Gates
    # =========================================================================

    def _check_gate(self, session: LearningSession, target: Phase, concept: str | None) -> tuple[bool, str]:
        current = session.current_phase

        if current is target and concept == session.current_concept:
            return False, "already in requested phase"
        if current.is_terminal:
            return False, "drawing-connections is terminal"

        if current is Phase.INITIALIZATION:
            if target is Phase.HIGH_LEVEL:
                return True, "entry point"
            return False, "initialization only leads to high-level"

        if current is Phase.HIGH_LEVEL:
            if target is Phase.CONCEPT_LEARNING:
                if self._concept_passed(session, concept):
                    return False, f"concept '{concept}' has already been memorized"
                return self._high_level_gate(session)
            return False, "high-level only leads to concept-learning"

        if current is Phase.CONCEPT_LEARNING:
            if target is Phase.MEMORIZATION and concept == session.current_concept:
                return self._topic_gate(session, concept)
            return False, "concept-learning only leads to memorization of the same concept"

        # current is MEMORIZATION
        if target is Phase.CONCEPT_LEARNING and concept == session.current_concept:
            return False, "cannot return to concept-learning for the concept being memorized"
        if target is Phase.CONCEPT_LEARNING and self._concept_passed(session, concept):
            return False, f"concept '{concept}' has already been memorized"
        if target in (Phase.CONCEPT_LEARNING, Phase.HIGH_LEVEL, Phase.DRAWING_CONNECTIONS):
            return self._items_gate(session, session.current_concept)
        return False, "memorization cannot move to the requested phase"

    def _high_level_gate(self, session: LearningSession) -> tuple[bool, str]:
        scores = self.aggregator.topic_comprehension_map(
            session, HIGH_LEVEL_BUCKET, self.course.high_level_topics
        )
        minimum = self.gates.high_level_min_comprehension
        weak = sorted(t for t, score in scores.items() if score < minimum)
        if weak:
            return False, f"high-level topics below {minimum}: {', '.join(weak)}"
        return True, "high-level comprehension met"

    def _topic_gate(self, session: LearningSession, concept_name: str) -> tuple[bool, str]:
        topics = set(self.course.get_concept(concept_name).topics)
        if not topics:
            return True, "concept has no discussion topics"
        unmastered = self.aggregator.unmastered_topics(session, concept_name, topics)
        ratio = len(unmastered) / len(topics)
        limit = self.gates.max_unmastered_topic_ratio
        if ratio > limit:
            return False, f"{len(unmastered)}/{len(topics)} topics unmastered (limit {limit:.0%})"
        return True, "topic mastery met"

    def _items_gate(self, session: LearningSession, concept_name: str | None) -> tuple[bool, str]:
        if concept_name is None:
            return False, "no concept is being memorized"
        concept = self.course.get_concept(concept_name)
        all_items = concept.items if self.gates.require_all_items_mastered else None
        unmastered = self.aggregator.unmastered_items(session, concept_name, all_items)
        if unmastered:
            return False, f"{len(unmastered)} item(s) not mastered in '{concept_name}'"
        return True, "all items mastered"

    def _concept_passed(self, session: LearningSession, concept_name: str) -> bool:
        """A concept whose memorization exit condition already holds (at least one item reviewed)."""
        progress = session.concept(concept_name)
        if progress is None or not progress.items_progress:
            return False
        return self._items_gate(session, concept_name)[0]

    # =========================================================================
    # Helpers
    # =========================================================================

    def _resolve_concept(self, session: LearningSession, target: Phase, concept_name: str | None) -> str | None:
        if concept_name is not None:
            name = self.course.get_concept(concept_name).name
            return None if target is Phase.HIGH_LEVEL else name
        if target is Phase.HIGH_LEVEL:
            return None
        if target.is_concept_scoped:
            if session.current_concept is None:
                raise ConceptNotFoundError(None, where=f"course '{self.course.name}'")
            return self.course.get_concept(session.current_concept).name
        return session.current_concept

    def _apply(self, session: LearningSession, target: Phase, concept: str | None) -> None:
        session.current_phase = target
        session.current_concept = concept
        session.last_activity_time = self.clock()
