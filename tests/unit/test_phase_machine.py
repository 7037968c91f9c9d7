"""
Unit tests for PhaseStateMachine.

Tests:
- Each gate in the forward phase graph
- Rejected transitions leave the session untouched
- Unknown concepts raise
- Forced transitions bypass gates
"""

import pytest

from src.phases.machine import PhaseGates, PhaseStateMachine
from src.progress.errors import ConceptNotFoundError
from src.progress.models import HIGH_LEVEL_BUCKET, Phase


@pytest.fixture
def machine(course, clock):
    return PhaseStateMachine(course, clock=clock)


def _pass_high_level(store, session, course, make_attempt, score=3):
    for topic in course.high_level_topics:
        store.record_topic_attempt(session, HIGH_LEVEL_BUCKET, make_attempt(score, topic=topic))


def _master_items(store, session, concept, items, make_attempt):
    for item in items:
        for _ in range(2):
            store.record_item_attempt(session, concept, item, make_attempt(5))


class TestForwardGates:
    def test_initialization_to_high_level_always_allowed(self, machine, session):
        result = machine.request_transition(session, Phase.HIGH_LEVEL)

        assert result.advanced
        assert session.current_phase is Phase.HIGH_LEVEL
        assert session.current_concept is None

    def test_high_level_gate_requires_all_topics_at_three(self, machine, store, session, course, make_attempt):
        machine.request_transition(session, Phase.HIGH_LEVEL)
        store.record_topic_attempt(session, HIGH_LEVEL_BUCKET, make_attempt(5, topic="binary numbers"))
        store.record_topic_attempt(session, HIGH_LEVEL_BUCKET, make_attempt(2, topic="what a protocol is"))

        result = machine.request_transition(session, Phase.CONCEPT_LEARNING, "OSI Model")
        assert not result.advanced
        assert "what a protocol is" in result.reason
        assert session.current_phase is Phase.HIGH_LEVEL

        _pass_high_level(store, session, course, make_attempt)
        result = machine.request_transition(session, Phase.CONCEPT_LEARNING, "OSI Model")
        assert result.advanced
        assert session.current_phase is Phase.CONCEPT_LEARNING
        assert session.current_concept == "OSI Model"

    def test_high_level_topics_fall_back_to_concept_names(self, store, session, course_data, make_attempt, clock):
        from src.course.models import Course

        course_data.pop("backgroundKnowledge")
        course = Course.from_dict(course_data)
        machine = PhaseStateMachine(course, clock=clock)
        machine.request_transition(session, Phase.HIGH_LEVEL)

        assert not machine.can_transition(session, Phase.CONCEPT_LEARNING, "Subnetting")
        _pass_high_level(store, session, course, make_attempt)
        assert machine.can_transition(session, Phase.CONCEPT_LEARNING, "Subnetting")

    def test_topic_gate_allows_at_most_twenty_percent_unmastered(
        self, machine, store, session, course, make_attempt
    ):
        session.current_phase = Phase.CONCEPT_LEARNING
        session.current_concept = "OSI Model"
        topics = course.get_concept("OSI Model").topics

        for topic in topics[:3]:
            store.record_topic_attempt(session, "OSI Model", make_attempt(5, topic=topic))
        result = machine.request_transition(session, Phase.MEMORIZATION)
        assert not result.advanced
        assert "2/5" in result.reason

        store.record_topic_attempt(session, "OSI Model", make_attempt(5, topic=topics[3]))
        result = machine.request_transition(session, Phase.MEMORIZATION)
        assert result.advanced
        assert result.concept == "OSI Model"

    def test_memorization_exit_requires_all_items_mastered(self, machine, store, session, course, make_attempt):
        session.current_phase = Phase.MEMORIZATION
        session.current_concept = "OSI Model"
        items = course.get_concept("OSI Model").items

        _master_items(store, session, "OSI Model", items[:2], make_attempt)
        result = machine.request_transition(session, Phase.CONCEPT_LEARNING, "Subnetting")
        assert not result.advanced
        assert session.current_concept == "OSI Model"

        _master_items(store, session, "OSI Model", items[2:], make_attempt)
        result = machine.request_transition(session, Phase.CONCEPT_LEARNING, "Subnetting")
        assert result.advanced
        assert session.current_phase is Phase.CONCEPT_LEARNING
        assert session.current_concept == "Subnetting"

    @pytest.mark.parametrize("target", [Phase.HIGH_LEVEL, Phase.DRAWING_CONNECTIONS])
    def test_memorization_other_exits(self, machine, store, session, course, make_attempt, target):
        session.current_phase = Phase.MEMORIZATION
        session.current_concept = "Subnetting"
        _master_items(store, session, "Subnetting", course.get_concept("Subnetting").items, make_attempt)

        assert machine.request_transition(session, target).advanced
        assert session.current_phase is target

    def test_drawing_connections_is_terminal(self, machine, session):
        session.current_phase = Phase.DRAWING_CONNECTIONS

        result = machine.request_transition(session, Phase.HIGH_LEVEL)
        assert not result.advanced
        assert "terminal" in result.reason

    def test_relaxed_item_gate_ignores_unattempted_items(self, course, store, session, make_attempt, clock):
        machine = PhaseStateMachine(course, gates=PhaseGates(require_all_items_mastered=False), clock=clock)
        session.current_phase = Phase.MEMORIZATION
        session.current_concept = "OSI Model"
        _master_items(store, session, "OSI Model", ["Physical"], make_attempt)

        assert machine.request_transition(session, Phase.DRAWING_CONNECTIONS).advanced


class TestRejectedTransitions:
    @pytest.mark.parametrize(
        "current,target",
        [
            (Phase.INITIALIZATION, Phase.MEMORIZATION),
            (Phase.INITIALIZATION, Phase.DRAWING_CONNECTIONS),
            (Phase.HIGH_LEVEL, Phase.MEMORIZATION),
            (Phase.CONCEPT_LEARNING, Phase.DRAWING_CONNECTIONS),
            (Phase.CONCEPT_LEARNING, Phase.HIGH_LEVEL),
        ],
    )
    def test_illegal_edges_are_noops(self, machine, session, current, target):
        session.current_phase = current
        session.current_concept = "OSI Model"
        before = session.last_activity_time

        result = machine.request_transition(session, target, "OSI Model")

        assert not result.advanced
        assert result.reason
        assert session.current_phase is current
        assert session.last_activity_time == before

    def test_cannot_relearn_concept_being_memorized(self, machine, store, session, course, make_attempt):
        session.current_phase = Phase.MEMORIZATION
        session.current_concept = "Subnetting"
        _master_items(store, session, "Subnetting", course.get_concept("Subnetting").items, make_attempt)

        assert not machine.request_transition(session, Phase.CONCEPT_LEARNING, "Subnetting").advanced

    def test_cannot_relearn_memorized_concept_via_high_level(
        self, machine, store, session, course, make_attempt
    ):
        session.current_phase = Phase.MEMORIZATION
        session.current_concept = "OSI Model"
        _master_items(store, session, "OSI Model", course.get_concept("OSI Model").items, make_attempt)

        assert machine.request_transition(session, Phase.HIGH_LEVEL).advanced
        assert session.current_concept is None
        _pass_high_level(store, session, course, make_attempt)

        with pytest.raises(ConceptNotFoundError):
            machine.request_transition(session, Phase.CONCEPT_LEARNING)

        result = machine.request_transition(session, Phase.CONCEPT_LEARNING, "OSI Model")
        assert not result.advanced
        assert "already been memorized" in result.reason
        assert session.current_phase is Phase.HIGH_LEVEL

        assert machine.request_transition(session, Phase.CONCEPT_LEARNING, "Subnetting").advanced

    def test_memorization_exit_skips_memorized_concepts(self, machine, store, session, course, make_attempt):
        _master_items(store, session, "OSI Model", course.get_concept("OSI Model").items, make_attempt)
        session.current_phase = Phase.MEMORIZATION
        session.current_concept = "Subnetting"
        _master_items(store, session, "Subnetting", course.get_concept("Subnetting").items, make_attempt)

        result = machine.request_transition(session, Phase.CONCEPT_LEARNING, "OSI Model")

        assert not result.advanced
        assert session.current_concept == "Subnetting"

    def test_partially_reviewed_concept_can_be_learned(self, machine, store, session, course, make_attempt):
        session.current_phase = Phase.HIGH_LEVEL
        _pass_high_level(store, session, course, make_attempt)
        _master_items(store, session, "OSI Model", ["Physical"], make_attempt)

        assert machine.request_transition(session, Phase.CONCEPT_LEARNING, "OSI Model").advanced

    def test_same_phase_is_not_an_advance(self, machine, session):
        session.current_phase = Phase.HIGH_LEVEL
        assert not machine.request_transition(session, Phase.HIGH_LEVEL).advanced

    def test_unknown_concept_raises(self, machine, store, session, course, make_attempt):
        session.current_phase = Phase.HIGH_LEVEL
        _pass_high_level(store, session, course, make_attempt)

        with pytest.raises(ConceptNotFoundError):
            machine.request_transition(session, Phase.CONCEPT_LEARNING, "Routing")
        assert session.current_phase is Phase.HIGH_LEVEL

    def test_concept_scoped_target_without_concept_raises(self, machine, session):
        session.current_phase = Phase.HIGH_LEVEL

        with pytest.raises(ConceptNotFoundError):
            machine.request_transition(session, Phase.CONCEPT_LEARNING)

    def test_string_targets_accepted(self, machine, session):
        assert machine.request_transition(session, "high-level").phase is Phase.HIGH_LEVEL


class TestForcedTransitions:
    def test_force_bypasses_gates(self, machine, session):
        result = machine.force_transition(session, Phase.MEMORIZATION, "Subnetting")

        assert result.advanced
        assert result.forced
        assert session.current_phase is Phase.MEMORIZATION
        assert session.current_concept == "Subnetting"

    def test_force_still_validates_concept(self, machine, session):
        with pytest.raises(ConceptNotFoundError):
            machine.force_transition(session, Phase.CONCEPT_LEARNING, "Routing")
        assert session.current_phase is Phase.INITIALIZATION

    def test_force_leaves_terminal_phase(self, machine, session):
        session.current_phase = Phase.DRAWING_CONNECTIONS

        assert machine.force_transition(session, Phase.HIGH_LEVEL).advanced
        assert session.current_phase is Phase.HIGH_LEVEL
