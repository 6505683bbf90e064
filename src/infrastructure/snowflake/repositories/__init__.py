"""
Snowflake repositories implementing the billing store interface.
"""

from .lessons import LessonRepository, MockLessonRepository, create_lesson_repository

__all__ = ["LessonRepository", "MockLessonRepository", "create_lesson_repository"]
