"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.course.models import Course  # noqa: E402
from src.course.repository import CourseRepository  # noqa: E402
from src.gateway.memory import InMemorySessionGateway  # noqa: E402
from src.progress.models import Attempt, Evaluation, LearningSession  # noqa: E402
from src.progress.store import ProgressStore  # noqa: E402
from src.service import LearningProgressService  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (touch the filesystem)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


class FakeClock:
    """Deterministic clock: advances one second per call."""

    def __init__(self, start: datetime = datetime(2025, 3, 1, 9, 0, 0)):
        self.current = start

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


def _attempt(score, topic=None, question="Q?", answer="A."):
    """Evaluator-shaped attempt with the given comprehension score."""
    return Attempt(
        question=question,
        user_answer=answer,
        ai_response=Evaluation(comprehension=score, response="feedback", target_topic=topic),
    )


@pytest.fixture
def make_attempt():
    return _attempt


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return ProgressStore(clock=clock)


@pytest.fixture
def session(clock):
    now = clock()
    return LearningSession(
        course_id="networking",
        learner_id="learner-1",
        start_time=now,
        last_activity_time=now,
    )


@pytest.fixture
def course_data():
    """Course definition in the generator's JSON shape."""
    return {
        "name": "networking",
        "backgroundKnowledge": ["binary numbers", "what a protocol is"],
        "concepts": [
            {
                "name": "OSI Model",
                "high-level": ["layers", "encapsulation", "headers", "PDUs", "peer communication"],
                "memorize": {
                    "fields": ["Layer", "Function"],
                    "items": ["Physical", "Data Link", "Network"],
                },
            },
            {
                "name": "Subnetting",
                "high-level": ["masks", "CIDR"],
                "memorize": {"fields": ["Prefix", "Hosts"], "items": ["/24", "/30"]},
            },
        ],
        "drawing-connections": ["How does subnetting relate to the network layer?"],
    }


@pytest.fixture
def course(course_data):
    return Course.from_dict(course_data)


@pytest.fixture
def course_repo(tmp_path, course):
    repo = CourseRepository(tmp_path / "courses")
    repo.save(course)
    return repo


@pytest.fixture
def gateway():
    return InMemorySessionGateway()


@pytest.fixture
def service(gateway, course_repo, clock):
    return LearningProgressService(gateway=gateway, courses=course_repo, clock=clock)
