"""
Learner progress core.

Components:
- models: Session aggregate, progress records, Phase
- store: ProgressStore mutation operations
- aggregator: MasteryAggregator read-only queries and dashboard summary
- errors: typed failures raised before any mutation
"""

from .aggregator import ItemPerformance, MasteryAggregator, ProgressSummary
from .errors import (
    ConceptNotFoundError,
    ConcurrentModificationError,
    CourseNotFoundError,
    InvalidComprehensionScoreError,
    InvalidRecordError,
    PersistenceError,
    ProgressError,
    SessionNotFoundError,
)
from .models import (
    Attempt,
    ConceptProgress,
    Evaluation,
    ItemProgress,
    LearningSession,
    Phase,
    SchedulingUpdate,
    SpecialQuestion,
    TopicProgress,
)
from .store import ProgressStore

__all__ = [
    # Models
    "Attempt",
    "ConceptProgress",
    "Evaluation",
    "ItemProgress",
    "LearningSession",
    "Phase",
    "SchedulingUpdate",
    "SpecialQuestion",
    "TopicProgress",
    # Operations
    "ProgressStore",
    "MasteryAggregator",
    "ItemPerformance",
    "ProgressSummary",
    # Errors
    "ProgressError",
    "SessionNotFoundError",
    "ConceptNotFoundError",
    "CourseNotFoundError",
    "InvalidComprehensionScoreError",
    "InvalidRecordError",
    "ConcurrentModificationError",
    "PersistenceError",
]
