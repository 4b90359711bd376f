"""
Pytest configuration and shared fixtures for testing.
"""
import random
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from assessment.api.deps import get_session_manager
from assessment.core.session_manager import SessionLockRegistry, SessionManager
from assessment.core.test_definitions import TestDefinitionService
from assessment.main import app
from assessment.models import (
    Base,
    Difficulty,
    Question,
    QuestionStatus,
    QuestionType,
    Skill,
    get_db,
)

# Path is relative to this file so the .db lands inside tests/ regardless of
# the working directory.
_TEST_DB = Path(__file__).parent / "test.db"
SQLALCHEMY_DATABASE_URL = f"sqlite:///{_TEST_DB}"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

START_TIME = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FixedClock:
    """Controllable stand-in for ``utc_now``."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


_DEFAULT_CONTENT: Dict[QuestionType, Dict[str, Any]] = {
    QuestionType.MULTIPLE_CHOICE: {
        "options": ["div", "span", "section", "article"],
        "correct_answer": 2,
    },
    QuestionType.TRUE_FALSE: {"options": None, "correct_answer": True},
    QuestionType.FILL_IN_BLANK: {
        "options": None,
        "correct_answer": [
            {"id": 1, "accepted": ["useState"], "case_sensitive": True},
            {"id": 2, "accepted": ["props", "properties"], "case_sensitive": False},
        ],
    },
    QuestionType.CODE_CHALLENGE: {"options": None, "correct_answer": None},
    QuestionType.DEBUG_FIX: {"options": None, "correct_answer": None},
}


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    """
    # Create all tables
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        # Drop all tables after test
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db_session):
    """Session factory bound to the test database, for multi-session tests."""
    return TestingSessionLocal


@pytest.fixture
def clock():
    """Clock frozen at a fixed Monday morning; advance it explicitly."""
    return FixedClock(START_TIME)


@pytest.fixture(scope="function")
def client(db_session, clock):
    """
    Create a test client with database dependency override.

    Sessions created through the API run on the shared ``clock`` fixture.
    """

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    def override_get_session_manager(db: Session = Depends(get_db)):
        return SessionManager(db, clock=clock, locks=SessionLockRegistry())

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_manager] = override_get_session_manager
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def question_factory(db_session):
    """
    Create catalog questions.

    Content (options and correct answer) defaults by question type and can
    be overridden per call.
    """

    def _create(
        question_type: QuestionType = QuestionType.MULTIPLE_CHOICE,
        difficulty: Difficulty = Difficulty.BEGINNER,
        skill: Skill = Skill.PYTHON,
        points: int = 2,
        status: QuestionStatus = QuestionStatus.ACTIVE,
        estimated_time_seconds: Optional[int] = None,
        weight: float = 1.0,
        **overrides: Any,
    ) -> Question:
        content = dict(_DEFAULT_CONTENT[question_type])
        content.update(overrides)
        question = Question(
            title=content.pop("title", f"{question_type.value} question"),
            body=content.pop("body", None),
            question_type=question_type,
            difficulty=difficulty,
            skill=skill,
            points=points,
            status=status,
            estimated_time_seconds=estimated_time_seconds,
            weight=weight,
            **content,
        )
        db_session.add(question)
        db_session.commit()
        db_session.refresh(question)
        return question

    return _create


@pytest.fixture
def catalog_questions(question_factory):
    """
    A small mixed catalog.

    Six multiple choice (two per difficulty), four true/false, two fill in
    the blank, two code challenges, one debug fix and one retired question.
    """
    questions = {
        "mc": [
            question_factory(QuestionType.MULTIPLE_CHOICE, difficulty, skill)
            for difficulty, skill in (
                (Difficulty.BEGINNER, Skill.HTML),
                (Difficulty.BEGINNER, Skill.CSS),
                (Difficulty.INTERMEDIATE, Skill.JAVASCRIPT),
                (Difficulty.INTERMEDIATE, Skill.REACT),
                (Difficulty.ADVANCED, Skill.REACT),
                (Difficulty.ADVANCED, Skill.BACKEND),
            )
        ],
        "tf": [
            question_factory(QuestionType.TRUE_FALSE, difficulty)
            for difficulty in (
                Difficulty.BEGINNER,
                Difficulty.BEGINNER,
                Difficulty.INTERMEDIATE,
                Difficulty.ADVANCED,
            )
        ],
        "fib": [
            question_factory(QuestionType.FILL_IN_BLANK, Difficulty.INTERMEDIATE),
            question_factory(QuestionType.FILL_IN_BLANK, Difficulty.ADVANCED),
        ],
        "code": [
            question_factory(QuestionType.CODE_CHALLENGE, Difficulty.INTERMEDIATE),
            question_factory(QuestionType.CODE_CHALLENGE, Difficulty.ADVANCED),
        ],
        "debug": [question_factory(QuestionType.DEBUG_FIX, Difficulty.ADVANCED)],
        "retired": [
            question_factory(
                QuestionType.MULTIPLE_CHOICE, status=QuestionStatus.RETIRED
            )
        ],
    }
    return questions


@pytest.fixture
def definitions(db_session, clock):
    """Test definition service with a seeded random source."""
    return TestDefinitionService(db_session, rng=random.Random(11), clock=clock)


@pytest.fixture
def manager(db_session, clock):
    """Session manager on the fixed clock with seeded draws."""
    return SessionManager(
        db_session,
        clock=clock,
        rng_factory=lambda: random.Random(7),
        locks=SessionLockRegistry(),
    )


@pytest.fixture
def publish_test(definitions):
    """
    Create and publish a test definition from a plain dict.

    Settings default to a 60 minute, single-attempt test with no shuffling
    so question order is predictable.
    """

    def _publish(spec: Dict[str, Any], **setting_overrides: Any):
        settings = {
            "time_limit_minutes": 60,
            "attempts_allowed": 1,
            "shuffle_questions": False,
            "shuffle_options": False,
            "passing_score_percent": 70,
        }
        settings.update(spec.get("settings", {}))
        settings.update(setting_overrides)
        payload = {"title": "Frontend fundamentals", **spec, "settings": settings}
        test = definitions.create(payload)
        return definitions.publish(test.id).test

    return _publish
