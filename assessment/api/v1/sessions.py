"""
Test session endpoints: status, answers, completion and results.
"""
from typing import Dict

from fastapi import APIRouter, Depends

from assessment.api.deps import get_current_user_id, get_session_manager
from assessment.core.datetime_utils import ensure_timezone_aware
from assessment.core.exceptions import NotFoundError
from assessment.core.session_manager import SessionManager
from assessment.models.models import Question, TestSession
from assessment.schemas.sessions import (
    AnswerRequest,
    AnswerResponse,
    QuestionResultResponse,
    ScoreResponse,
    SessionQuestionResponse,
    SessionResponse,
    SessionResultResponse,
)

router = APIRouter()


def get_owned_session(
    manager: SessionManager, session_id: int, user_id: int
) -> TestSession:
    """
    Load a session (running the expiry check) that belongs to ``user_id``.

    Another user's session is reported as not found.
    """
    session = manager.get_session(session_id)
    if session.user_id != user_id:
        raise NotFoundError("Session", session_id)
    return session


def build_session_response(manager: SessionManager, session: TestSession) -> SessionResponse:
    """Session view with question content in display order."""
    question_ids = [sq.question_id for sq in session.questions]
    rows: Dict[int, Question] = {
        q.id: q
        for q in manager.db.query(Question).filter(Question.id.in_(question_ids)).all()
    }

    questions = []
    for sq in session.questions:
        question = rows.get(sq.question_id)
        options = list(question.options) if question and question.options else None
        if options is not None and sq.option_order:
            options = [options[i] for i in sq.option_order]
        questions.append(
            SessionQuestionResponse(
                question_id=sq.question_id,
                order=sq.order,
                section_order=sq.section_order,
                question_type=sq.question_type,
                points=sq.points,
                title=question.title if question else "",
                body=question.body if question else None,
                options=options,
                answer=sq.answer,
                time_spent_seconds=sq.time_spent_seconds or 0,
            )
        )

    return SessionResponse(
        id=session.id,
        test_id=session.test_id,
        user_id=session.user_id,
        attempt_number=session.attempt_number,
        status=session.status,
        started_at=ensure_timezone_aware(session.started_at),
        expires_at=manager.deadline(session),
        completed_at=(
            ensure_timezone_aware(session.completed_at) if session.completed_at else None
        ),
        time_spent_seconds=session.time_spent_seconds,
        questions=questions,
    )


@router.get("/{session_id}", response_model=SessionResponse)
def get_session(
    session_id: int,
    user_id: int = Depends(get_current_user_id),
    manager: SessionManager = Depends(get_session_manager),
):
    """
    Get a session and its question snapshot.

    An in-progress session past its time limit is expired by this call.
    """
    session = get_owned_session(manager, session_id, user_id)
    return build_session_response(manager, session)


@router.post("/{session_id}/answers", response_model=AnswerResponse)
def submit_answer(
    session_id: int,
    submission: AnswerRequest,
    user_id: int = Depends(get_current_user_id),
    manager: SessionManager = Depends(get_session_manager),
):
    """
    Record (or overwrite) the answer to one question.

    Auto-graded types report correctness immediately.
    """
    get_owned_session(manager, session_id, user_id)
    sq = manager.record_answer(
        session_id,
        submission.question_id,
        submission.answer,
        submission.time_spent_seconds,
    )
    return AnswerResponse(
        question_id=sq.question_id,
        is_correct=sq.is_correct,
        points_awarded=sq.points_awarded or 0,
        time_spent_seconds=sq.time_spent_seconds or 0,
    )


@router.post("/{session_id}/complete", response_model=SessionResultResponse)
def complete_session(
    session_id: int,
    user_id: int = Depends(get_current_user_id),
    manager: SessionManager = Depends(get_session_manager),
):
    """
    Complete an in-progress session and return its final results.
    """
    get_owned_session(manager, session_id, user_id)
    manager.complete(session_id)
    return _result_response(manager, session_id)


@router.get("/{session_id}/results", response_model=SessionResultResponse)
def get_results(
    session_id: int,
    user_id: int = Depends(get_current_user_id),
    manager: SessionManager = Depends(get_session_manager),
):
    """
    Get the results of a finished session.
    """
    get_owned_session(manager, session_id, user_id)
    return _result_response(manager, session_id)


def _result_response(manager: SessionManager, session_id: int) -> SessionResultResponse:
    result = manager.get_results(session_id)
    return SessionResultResponse(
        session_id=result.session_id,
        test_id=result.test_id,
        user_id=result.user_id,
        attempt_number=result.attempt_number,
        status=result.status,
        started_at=result.started_at,
        completed_at=result.completed_at,
        time_spent_seconds=result.time_spent_seconds,
        score=ScoreResponse(
            total_points=result.score.total_points,
            earned_points=result.score.earned_points,
            percentage=result.score.percentage,
            passed=result.score.passed,
        ),
        questions=[
            QuestionResultResponse(
                question_id=q.question_id,
                order=q.order,
                section_order=q.section_order,
                question_type=q.question_type,
                points=q.points,
                answer=q.answer,
                is_correct=q.is_correct,
                points_awarded=q.points_awarded,
                time_spent_seconds=q.time_spent_seconds,
                hints_used=q.hints_used,
            )
            for q in result.questions
        ],
    )
