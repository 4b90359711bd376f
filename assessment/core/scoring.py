"""
Assessment scoring.

Converts captured answers into per-question results and an aggregate score.

Per-question rules come from ``QUESTION_TYPE_RULES``:
- true_false: exact equality with the stored bool; full points or zero
- multiple_choice: index equality after undoing the option shuffle; full points or zero
- fill_in_blank: every blank must match; full points or zero
- code_challenge / debug_fix: not decided here, is_correct stays None with 0 points

Aggregate:
- total_points = sum of points over every question in the session, answered or not
- earned_points = sum of points_awarded
- percentage = round(100 * earned / total), half up, 0 when total is 0
- passed = percentage >= passing_score_percent

``finalize`` is pure: recomputing on an unchanged question list yields an
identical ``Score``.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Optional, Protocol, Sequence

from assessment.core.question_types import QUESTION_TYPE_RULES
from assessment.models.models import QuestionType


@dataclass(frozen=True)
class QuestionScore:
    """Result of grading one answer."""

    is_correct: Optional[bool]
    points_awarded: int


@dataclass(frozen=True)
class Score:
    """Aggregate result for a session."""

    total_points: int
    earned_points: int
    percentage: int
    passed: bool


class GradableQuestion(Protocol):
    """What ``score_question`` needs from a session question snapshot."""

    question_type: QuestionType
    points: int
    correct_answer: Any
    option_order: Optional[Sequence[int]]


class ScoredQuestion(Protocol):
    """What ``finalize`` needs from a session question snapshot."""

    points: int
    points_awarded: Optional[int]


def score_question(question: GradableQuestion, answer: Any) -> QuestionScore:
    """
    Grade a single answer against the question snapshot.

    Args:
        question: Snapshot carrying type, points, correct answer and option order
        answer: Submitted payload; its shape depends on the question type

    Returns:
        QuestionScore; ``is_correct`` is None for unanswered or externally
        graded questions
    """
    rule = QUESTION_TYPE_RULES[QuestionType(question.question_type)]
    if not rule.auto_graded or answer is None:
        return QuestionScore(is_correct=None, points_awarded=0)

    is_correct = rule.grader(question.correct_answer, answer, question.option_order)
    return QuestionScore(
        is_correct=is_correct,
        points_awarded=question.points if is_correct else 0,
    )


def calculate_percentage(earned_points: int, total_points: int) -> int:
    """
    Integer percentage rounded half up.

    Uses integer arithmetic so 0.5 boundaries are exact:
    floor(100 * earned / total + 0.5) == (200 * earned + total) // (2 * total)

    Example:
        >>> calculate_percentage(7, 10)
        70
        >>> calculate_percentage(1, 8)   # 12.5
        13
        >>> calculate_percentage(0, 0)
        0
    """
    if total_points <= 0:
        return 0
    return (200 * earned_points + total_points) // (2 * total_points)


def finalize(questions: Iterable[ScoredQuestion], passing_score_percent: int) -> Score:
    """
    Compute the aggregate score for a session's question list.

    Args:
        questions: Every question in the session snapshot
        passing_score_percent: Threshold from the test settings (0-100)

    Returns:
        Score

    Raises:
        ValueError: If passing_score_percent is outside 0-100 or a question
            awards more points than it is worth
    """
    if not 0 <= passing_score_percent <= 100:
        raise ValueError(
            f"passing_score_percent must be between 0 and 100, got {passing_score_percent}"
        )

    total_points = 0
    earned_points = 0
    for question in questions:
        awarded = question.points_awarded or 0
        if awarded > question.points:
            raise ValueError(
                f"points_awarded ({awarded}) exceeds question points ({question.points})"
            )
        total_points += question.points
        earned_points += awarded

    percentage = calculate_percentage(earned_points, total_points)
    return Score(
        total_points=total_points,
        earned_points=earned_points,
        percentage=percentage,
        passed=percentage >= passing_score_percent,
    )
