"""
Database models package.
"""
from .base import Base, engine, get_db, SessionLocal
from .models import (
    Difficulty,
    Question,
    QuestionStatus,
    QuestionType,
    SectionType,
    SelectionStrategy,
    SessionQuestion,
    SessionStatus,
    Skill,
    TestDefinition,
    TestSession,
    TestStatus,
    TimeBucket,
)

__all__ = [
    "Base",
    "engine",
    "get_db",
    "SessionLocal",
    "Difficulty",
    "Question",
    "QuestionStatus",
    "QuestionType",
    "SectionType",
    "SelectionStrategy",
    "SessionQuestion",
    "SessionStatus",
    "Skill",
    "TestDefinition",
    "TestSession",
    "TestStatus",
    "TimeBucket",
]
