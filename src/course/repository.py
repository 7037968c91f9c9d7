"""
Course definitions stored as JSON files.

Courses are stored with naming: {course_name}.json
"""

from __future__ import annotations

import json
from pathlib import Path

from loguru import logger

from src.course.models import Course
from src.progress.errors import CourseNotFoundError


class CourseRepository:
    """Loads and lists generated course definitions."""

    def __init__(self, course_dir: Path):
        self.course_dir = course_dir
        self.course_dir.mkdir(parents=True, exist_ok=True)
        self._cache: dict[str, Course] = {}

    def _path(self, course_id: str) -> Path:
        return self.course_dir / f"{course_id}.json"

    def save(self, course: Course) -> Path:
        """Save a course definition to disk."""
        filepath = self._path(course.name)
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(course.to_dict(), f, indent=2)
        self._cache[course.name] = course
        logger.info(f"Course saved to {filepath}")
        return filepath

    def load(self, course_id: str) -> Course:
        """
        Load a course by name.

        Raises:
            CourseNotFoundError: if no such course file exists
        """
        if course_id in self._cache:
            return self._cache[course_id]

        filepath = self._path(course_id)
        if not filepath.exists():
            raise CourseNotFoundError(course_id)

        with open(filepath, "r", encoding="utf-8") as f:
            course = Course.from_dict(json.load(f))

        self._cache[course_id] = course
        return course

    def list_courses(self) -> list[str]:
        return sorted(p.stem for p in self.course_dir.glob("*.json"))
