"""Course metadata: read-only concept, topic and item definitions."""

from .models import Concept, Course, MemorizeField
from .repository import CourseRepository

__all__ = ["Concept", "Course", "MemorizeField", "CourseRepository"]
