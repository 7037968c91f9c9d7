"""
Unit tests for MasteryAggregator.

Covers item/topic mastery queries, struggling/strong item lists,
concept completion and the dashboard summary.
"""

import pytest

from src.course.models import Concept, MemorizeField
from src.progress.aggregator import MasteryAggregator
from src.progress.models import HIGH_LEVEL_BUCKET


@pytest.fixture
def aggregator():
    return MasteryAggregator()


def _master_topics(store, session, concept, topics, score=5, make=None):
    for topic in topics:
        store.record_topic_attempt(session, concept, make(score, topic=topic))


class TestItemQueries:
    def test_unmastered_items_without_course_list(self, aggregator, store, session, make_attempt):
        store.record_item_attempt(session, "OSI Model", "Physical", make_attempt(5))
        store.record_item_attempt(session, "OSI Model", "Physical", make_attempt(4))
        store.record_item_attempt(session, "OSI Model", "Network", make_attempt(4))

        assert aggregator.unmastered_items(session, "OSI Model") == {"Network"}
        assert aggregator.is_item_mastered(session, "OSI Model", "Physical")

    def test_unmastered_items_include_never_attempted(self, aggregator, store, session, make_attempt, course):
        store.record_item_attempt(session, "OSI Model", "Physical", make_attempt(5))
        store.record_item_attempt(session, "OSI Model", "Physical", make_attempt(5))

        items = course.get_concept("OSI Model").items
        assert aggregator.unmastered_items(session, "OSI Model", items) == {"Data Link", "Network"}

    def test_unknown_concept_has_nothing_mastered(self, aggregator, session):
        assert aggregator.unmastered_items(session, "Subnetting") == set()
        assert aggregator.unmastered_items(session, "Subnetting", ["/24"]) == {"/24"}
        assert not aggregator.is_item_mastered(session, "Subnetting", "/24")

    def test_struggling_items_weakest_first(self, aggregator, store, session, make_attempt):
        for item, scores in {"Physical": [1, 2], "Network": [0, 1], "Data Link": [4, 5]}.items():
            for score in scores:
                store.record_item_attempt(session, "OSI Model", item, make_attempt(score))

        struggling = aggregator.struggling_items(session, "OSI Model")
        assert [(p.item, p.average_comprehension) for p in struggling] == [("Network", 0.5), ("Physical", 1.5)]

    def test_well_performing_items_strongest_first(self, aggregator, store, session, make_attempt):
        for item, scores in {"Physical": [4, 4], "Network": [5, 5], "Data Link": [3, 2]}.items():
            for score in scores:
                store.record_item_attempt(session, "OSI Model", item, make_attempt(score))

        strong = aggregator.well_performing_items(session, "OSI Model")
        assert [p.item for p in strong] == ["Network", "Physical"]

    def test_items_mastered_counts_course_items_only(self, aggregator, store, session, make_attempt, course):
        for item in ("Physical", "Extra"):
            store.record_item_attempt(session, "OSI Model", item, make_attempt(5))
            store.record_item_attempt(session, "OSI Model", item, make_attempt(5))

        assert aggregator.items_mastered(session, course) == 1


class TestTopicQueries:
    def test_comprehension_map_defaults_to_zero(self, aggregator, store, session, make_attempt):
        store.record_topic_attempt(session, "OSI Model", make_attempt(3, topic="layers"))

        scores = aggregator.topic_comprehension_map(session, "OSI Model", ["layers", "headers"])
        assert scores == {"layers": 3, "headers": 0}

    def test_unmastered_topics(self, aggregator, store, session, make_attempt, course):
        topics = course.get_concept("OSI Model").topics
        _master_topics(store, session, "OSI Model", topics[:3], make=make_attempt)
        store.record_topic_attempt(session, "OSI Model", make_attempt(4, topic=topics[3]))

        assert aggregator.unmastered_topics(session, "OSI Model", topics) == {"PDUs", "peer communication"}
        assert aggregator.is_topic_mastered(session, "OSI Model", "layers")
        assert not aggregator.is_topic_mastered(session, "OSI Model", "PDUs")

    def test_high_level_comprehension_uses_background_knowledge(
        self, aggregator, store, session, make_attempt, course
    ):
        store.record_topic_attempt(session, HIGH_LEVEL_BUCKET, make_attempt(4, topic="binary numbers"))

        assert aggregator.high_level_comprehension(session, course) == {
            "binary numbers": 4,
            "what a protocol is": 0,
        }


class TestConceptCompletion:
    def test_completion_rate_and_threshold(self, aggregator, store, session, make_attempt, course):
        osi = course.get_concept("OSI Model")

        _master_topics(store, session, "OSI Model", osi.topics[:3], make=make_attempt)
        assert aggregator.concept_completion_rate(session, osi) == pytest.approx(0.6)
        assert not aggregator.is_concept_completed(session, osi)

        _master_topics(store, session, "OSI Model", osi.topics[3:4], make=make_attempt)
        assert aggregator.concept_completion_rate(session, osi) == pytest.approx(0.8)
        assert aggregator.is_concept_completed(session, osi)

    def test_topics_outside_course_do_not_count(self, aggregator, store, session, make_attempt, course):
        subnetting = course.get_concept("Subnetting")
        _master_topics(store, session, "Subnetting", ["masks", "VLSM", "supernets"], make=make_attempt)

        assert aggregator.concept_completion_rate(session, subnetting) == pytest.approx(0.5)

    def test_concept_without_topics_is_never_complete(self, aggregator, session):
        bare = Concept(name="Ports", high_level=[], memorize=MemorizeField(fields=["Port"], items=["22"]))

        assert aggregator.concept_completion_rate(session, bare) == 0.0
        assert not aggregator.is_concept_completed(session, bare)

    def test_overall_session_progress(self, aggregator, store, session, make_attempt, course):
        assert aggregator.overall_session_progress(session, course) == 0.0

        _master_topics(store, session, "Subnetting", ["masks", "CIDR"], make=make_attempt)
        assert aggregator.overall_session_progress(session, course) == pytest.approx(0.5)


class TestProgressSummary:
    def test_summary_keys_and_totals(self, aggregator, store, session, make_attempt, course):
        session.current_concept = "OSI Model"
        store.record_topic_attempt(session, HIGH_LEVEL_BUCKET, make_attempt(3, topic="binary numbers"))
        store.record_topic_attempt(session, "OSI Model", make_attempt(5, topic="layers"))
        store.record_item_attempt(session, "OSI Model", "Physical", make_attempt(4))
        store.record_item_attempt(session, "OSI Model", "Physical", make_attempt(2))

        summary = aggregator.progress_summary(session, course)

        assert summary.topic_progress["high-level:binary numbers"] == 3
        assert summary.topic_progress["high-level:what a protocol is"] == 0
        assert summary.topic_progress["OSI Model:layers"] == 5
        assert summary.topic_progress["Subnetting:CIDR"] == 0
        assert summary.item_progress == {"OSI Model:Physical": {"successCount": 1, "comprehension": 2}}

        overall = summary.overall_progress
        assert overall.total_concepts == 2
        assert overall.total_items == 5
        assert overall.items_mastered == 0
        assert overall.current_concept_progress == pytest.approx(0.2)

    def test_summary_serializes_camel_case(self, aggregator, session, course):
        data = aggregator.progress_summary(session, course).to_dict()

        assert data["currentPhase"] == "initialization"
        assert data["overallProgress"]["overallCompletion"] == 0.0
        assert set(data) == {
            "courseId",
            "learnerId",
            "currentPhase",
            "currentConcept",
            "topicProgress",
            "itemProgress",
            "overallProgress",
        }

    def test_summary_does_not_mutate_session(self, aggregator, session, course):
        aggregator.progress_summary(session, course)
        assert session.concepts_progress == {}
