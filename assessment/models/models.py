"""
Database models for the assessment engine.

Four aggregates are persisted: the question catalog, reusable test
definitions, and user sessions with their question snapshots.
"""
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import enum

from .base import Base


class QuestionType(str, enum.Enum):
    """Question type enumeration."""

    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    FILL_IN_BLANK = "fill_in_blank"
    CODE_CHALLENGE = "code_challenge"
    DEBUG_FIX = "debug_fix"


class Difficulty(str, enum.Enum):
    """Difficulty level enumeration, ordered beginner -> advanced."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"

    @property
    def rank(self) -> int:
        return _DIFFICULTY_RANKS[self]


_DIFFICULTY_RANKS = {
    Difficulty.BEGINNER: 1,
    Difficulty.INTERMEDIATE: 2,
    Difficulty.ADVANCED: 3,
}


class Skill(str, enum.Enum):
    """Skill area a question exercises."""

    HTML = "html"
    CSS = "css"
    JAVASCRIPT = "javascript"
    REACT = "react"
    FLUTTER = "flutter"
    REACT_NATIVE = "react_native"
    BACKEND = "backend"
    PYTHON = "python"


class QuestionStatus(str, enum.Enum):
    """Review status of a catalog question. Only ACTIVE questions are drawable."""

    ACTIVE = "active"
    PENDING_REVIEW = "pending_review"
    REJECTED = "rejected"
    RETIRED = "retired"


class TestStatus(str, enum.Enum):
    """Test definition lifecycle status."""

    __test__ = False  # not a pytest test class

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class SessionStatus(str, enum.Enum):
    """Test session status enumeration."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    EXPIRED = "expired"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionStatus.IN_PROGRESS


class SectionType(str, enum.Enum):
    """Section type, restricting which question types a section admits."""

    MIXED = "mixed"
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    CODING = "coding"
    DEBUGGING = "debugging"
    THEORY = "theory"
    PRACTICAL = "practical"
    CUSTOM = "custom"


class SelectionStrategy(str, enum.Enum):
    """Strategy used to draw questions from a pool."""

    RANDOM = "random"
    BALANCED = "balanced"
    PROGRESSIVE = "progressive"
    WEIGHTED = "weighted"


class TimeBucket(str, enum.Enum):
    """Estimated completion time bucket for distribution targets."""

    QUICK = "quick"
    MEDIUM = "medium"
    LONG = "long"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Question(Base):
    """Question catalog entry."""

    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    body = Column(Text)
    question_type = Column(Enum(QuestionType), nullable=False)
    skill = Column(Enum(Skill), nullable=False)
    difficulty = Column(Enum(Difficulty), nullable=False)
    points = Column(Integer, default=2, nullable=False)
    # Null means "use the default for the question type"
    estimated_time_seconds = Column(Integer)
    weight = Column(Float, default=1.0, nullable=False)
    status = Column(
        Enum(QuestionStatus), default=QuestionStatus.ACTIVE, nullable=False
    )
    # JSON array of option strings for multiple choice, null otherwise
    options = Column(JSON)
    # Shape depends on question_type:
    #   true_false      -> bool
    #   multiple_choice -> int index into options
    #   fill_in_blank   -> [{"id", "accepted": [...], "case_sensitive": bool}]
    #   code types      -> null
    correct_answer = Column(JSON)
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)

    __table_args__ = (
        Index("ix_questions_status_type", "status", "question_type"),
        CheckConstraint("points >= 0", name="ck_questions_points_non_negative"),
        CheckConstraint("weight > 0", name="ck_questions_weight_positive"),
    )


class TestDefinition(Base):
    """Reusable assessment blueprint.

    The structure columns hold the JSON dump of the validated
    ``TestDefinitionSpec`` value objects (see ``assessment.schemas.definitions``).
    """

    __tablename__ = "test_definitions"
    __test__ = False  # not a pytest test class

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    status = Column(
        Enum(TestStatus), default=TestStatus.DRAFT, nullable=False, index=True
    )
    settings = Column(JSON, nullable=False)
    questions = Column(JSON, nullable=False, default=list)
    sections = Column(JSON, nullable=False, default=list)
    question_pool = Column(JSON(none_as_null=True))
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, nullable=False
    )
    published_at = Column(DateTime(timezone=True))

    sessions = relationship("TestSession", back_populates="test")


class TestSession(Base):
    """One user's attempt at a test definition."""

    __tablename__ = "test_sessions"
    __test__ = False  # not a pytest test class

    id = Column(Integer, primary_key=True, index=True)
    test_id = Column(
        Integer, ForeignKey("test_definitions.id"), nullable=False, index=True
    )
    user_id = Column(Integer, nullable=False, index=True)
    attempt_number = Column(Integer, nullable=False)
    status = Column(
        Enum(SessionStatus), default=SessionStatus.IN_PROGRESS, nullable=False
    )
    started_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    completed_at = Column(DateTime(timezone=True))
    time_spent_seconds = Column(Integer)

    # Snapshot of the definition settings at start time
    time_limit_minutes = Column(Integer, nullable=False)
    passing_score_percent = Column(Integer, nullable=False)

    # Score; recomputed on every answer until score_frozen is set
    total_points = Column(Integer, default=0, nullable=False)
    earned_points = Column(Integer, default=0, nullable=False)
    percentage = Column(Integer, default=0, nullable=False)
    passed = Column(Boolean, default=False, nullable=False)
    score_frozen = Column(Boolean, default=False, nullable=False)

    test = relationship("TestDefinition", back_populates="sessions")
    questions = relationship(
        "SessionQuestion",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="SessionQuestion.order",
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "test_id",
            "attempt_number",
            name="uq_test_sessions_user_test_attempt",
        ),
        # At most one in-progress session per (user, test). Enum columns
        # store member names, hence 'IN_PROGRESS'.
        Index(
            "uq_test_sessions_user_test_active",
            "user_id",
            "test_id",
            unique=True,
            postgresql_where=text("status = 'IN_PROGRESS'"),
            sqlite_where=text("status = 'IN_PROGRESS'"),
        ),
        Index("ix_test_sessions_user_test", "user_id", "test_id"),
        Index("ix_test_sessions_test_status", "test_id", "status"),
        CheckConstraint("attempt_number >= 1", name="ck_test_sessions_attempt_positive"),
    )


class SessionQuestion(Base):
    """Snapshot of one question within a session."""

    __tablename__ = "session_questions"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(
        Integer,
        ForeignKey("test_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id = Column(Integer, ForeignKey("questions.id"), nullable=False)
    order = Column(Integer, nullable=False)
    section_order = Column(Integer)  # null for flat tests
    question_type = Column(Enum(QuestionType), nullable=False)
    difficulty = Column(Enum(Difficulty), nullable=False)
    points = Column(Integer, nullable=False)
    correct_answer = Column(JSON(none_as_null=True))
    # Displayed option index -> stored option index, multiple choice only
    option_order = Column(JSON(none_as_null=True))
    answer = Column(JSON(none_as_null=True))
    is_correct = Column(Boolean)
    points_awarded = Column(Integer, default=0, nullable=False)
    time_spent_seconds = Column(Integer, default=0, nullable=False)
    hints_used = Column(JSON, default=list, nullable=False)
    answered_at = Column(DateTime(timezone=True))

    session = relationship("TestSession", back_populates="questions")

    __table_args__ = (
        UniqueConstraint(
            "session_id", "question_id", name="uq_session_questions_session_question"
        ),
    )
