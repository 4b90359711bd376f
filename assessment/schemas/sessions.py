"""
Pydantic schemas for test session endpoints.
"""
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from assessment.models.models import QuestionType, SessionStatus


class SessionQuestionResponse(BaseModel):
    """Schema for a question as shown during a session (no correctness data)."""

    question_id: int = Field(..., description="Question ID")
    order: int = Field(..., description="1-based position in the session")
    section_order: Optional[int] = Field(None, description="Owning section order")
    question_type: QuestionType = Field(..., description="Question type")
    points: int = Field(..., description="Points this question is worth")
    title: str = Field(..., description="Question title")
    body: Optional[str] = Field(None, description="Question body")
    options: Optional[List[str]] = Field(
        None, description="Answer options in display order (multiple choice)"
    )
    answer: Any = Field(None, description="Answer recorded so far")
    time_spent_seconds: int = Field(0, description="Time spent on this question")


class SessionResponse(BaseModel):
    """Schema for a test session."""

    id: int = Field(..., description="Session ID")
    test_id: int = Field(..., description="Test definition ID")
    user_id: int = Field(..., description="User ID")
    attempt_number: int = Field(..., description="1-based attempt number")
    status: SessionStatus = Field(..., description="Session status")
    started_at: datetime = Field(..., description="Start timestamp")
    expires_at: datetime = Field(..., description="Time limit deadline")
    completed_at: Optional[datetime] = Field(None, description="End timestamp")
    time_spent_seconds: Optional[int] = Field(None, description="Total time spent")
    questions: List[SessionQuestionResponse] = Field(
        default_factory=list, description="Question snapshot"
    )


class AnswerRequest(BaseModel):
    """Schema for recording an answer."""

    question_id: int = Field(..., description="Question being answered")
    answer: Any = Field(..., description="Answer payload; shape depends on type")
    time_spent_seconds: int = Field(
        0, ge=0, description="Seconds spent since the last submission"
    )


class AnswerResponse(BaseModel):
    """Schema for a recorded answer."""

    question_id: int = Field(..., description="Question ID")
    is_correct: Optional[bool] = Field(
        None, description="Correctness for auto-graded types, null otherwise"
    )
    points_awarded: int = Field(..., description="Points awarded so far")
    time_spent_seconds: int = Field(..., description="Accumulated time on the question")


class ScoreResponse(BaseModel):
    """Schema for an aggregate score."""

    total_points: int = Field(..., description="Points available")
    earned_points: int = Field(..., description="Points earned")
    percentage: int = Field(..., description="Rounded percentage")
    passed: bool = Field(..., description="Percentage met the passing score")


class QuestionResultResponse(BaseModel):
    """Schema for one question in a session result."""

    question_id: int
    order: int
    section_order: Optional[int] = None
    question_type: QuestionType
    points: int
    answer: Any = None
    is_correct: Optional[bool] = None
    points_awarded: int
    time_spent_seconds: int
    hints_used: int


class SessionResultResponse(BaseModel):
    """Schema for the results of a finished session."""

    session_id: int = Field(..., description="Session ID")
    test_id: int = Field(..., description="Test definition ID")
    user_id: int = Field(..., description="User ID")
    attempt_number: int = Field(..., description="1-based attempt number")
    status: SessionStatus = Field(..., description="Terminal session status")
    started_at: datetime = Field(..., description="Start timestamp")
    completed_at: Optional[datetime] = Field(None, description="End timestamp")
    time_spent_seconds: Optional[int] = Field(None, description="Total time spent")
    score: ScoreResponse = Field(..., description="Final score")
    questions: List[QuestionResultResponse] = Field(
        default_factory=list, description="Per-question results"
    )
