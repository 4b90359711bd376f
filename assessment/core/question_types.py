"""
Per-question-type and per-section-type behavior tables.

The question type set is closed, so grading and time estimates are looked
up in ``QUESTION_TYPE_RULES`` instead of being switched on at each call
site. ``SECTION_TYPE_RULES`` does the same for section restrictions.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Sequence

from assessment.core.config import settings
from assessment.models.models import QuestionType, SectionType, TimeBucket

# (stored correct answer, submitted answer, option permutation) -> correct?
Grader = Callable[[Any, Any, Optional[Sequence[int]]], bool]


def _grade_true_false(correct: Any, answer: Any, option_order: Optional[Sequence[int]]) -> bool:
    # bool is required; 1/0 and "true" are not accepted
    return isinstance(answer, bool) and isinstance(correct, bool) and answer is correct


def _parse_index(answer: Any) -> Optional[int]:
    if isinstance(answer, bool):
        return None
    if isinstance(answer, int):
        return answer
    if isinstance(answer, str) and answer.strip().isdigit():
        return int(answer.strip())
    return None


def _grade_multiple_choice(
    correct: Any, answer: Any, option_order: Optional[Sequence[int]]
) -> bool:
    index = _parse_index(answer)
    if index is None or isinstance(correct, bool) or not isinstance(correct, int):
        return False
    if option_order is not None:
        if not 0 <= index < len(option_order):
            return False
        index = option_order[index]
    return index == correct


def _blank_matches(blank: Mapping[str, Any], submitted: Any) -> bool:
    if not isinstance(submitted, str):
        return False
    accepted = blank.get("accepted") or []
    text = submitted.strip()
    if blank.get("case_sensitive", False):
        return any(text == str(a).strip() for a in accepted)
    folded = text.casefold()
    return any(folded == str(a).strip().casefold() for a in accepted)


def _grade_fill_in_blank(
    correct: Any, answer: Any, option_order: Optional[Sequence[int]]
) -> bool:
    """All blanks must match one of their accepted answers."""
    if not isinstance(answer, Mapping) or not correct:
        return False
    return all(
        _blank_matches(blank, answer.get(str(blank.get("id")))) for blank in correct
    )


@dataclass(frozen=True)
class QuestionTypeRule:
    """How one question type is graded and timed."""

    auto_graded: bool
    default_estimated_seconds: int
    grader: Optional[Grader] = None


QUESTION_TYPE_RULES: Dict[QuestionType, QuestionTypeRule] = {
    QuestionType.MULTIPLE_CHOICE: QuestionTypeRule(True, 90, _grade_multiple_choice),
    QuestionType.TRUE_FALSE: QuestionTypeRule(True, 60, _grade_true_false),
    QuestionType.FILL_IN_BLANK: QuestionTypeRule(True, 120, _grade_fill_in_blank),
    # Graded externally (execution or manual review)
    QuestionType.CODE_CHALLENGE: QuestionTypeRule(False, 480),
    QuestionType.DEBUG_FIX: QuestionTypeRule(False, 600),
}


@dataclass(frozen=True)
class SectionTypeRule:
    """Question types a section admits and its suggested seconds per question.

    ``allowed_types=None`` means the section supplies its own list (custom).
    """

    allowed_types: Optional[FrozenSet[QuestionType]]
    suggested_seconds: int


_ALL_TYPES = frozenset(QuestionType)

SECTION_TYPE_RULES: Dict[SectionType, SectionTypeRule] = {
    SectionType.MIXED: SectionTypeRule(_ALL_TYPES, 120),
    SectionType.MULTIPLE_CHOICE: SectionTypeRule(
        frozenset({QuestionType.MULTIPLE_CHOICE}), 90
    ),
    SectionType.TRUE_FALSE: SectionTypeRule(frozenset({QuestionType.TRUE_FALSE}), 60),
    SectionType.CODING: SectionTypeRule(
        frozenset({QuestionType.CODE_CHALLENGE, QuestionType.DEBUG_FIX}), 480
    ),
    SectionType.DEBUGGING: SectionTypeRule(frozenset({QuestionType.DEBUG_FIX}), 600),
    SectionType.THEORY: SectionTypeRule(
        frozenset(
            {
                QuestionType.MULTIPLE_CHOICE,
                QuestionType.TRUE_FALSE,
                QuestionType.FILL_IN_BLANK,
            }
        ),
        90,
    ),
    SectionType.PRACTICAL: SectionTypeRule(
        frozenset({QuestionType.CODE_CHALLENGE}), 720
    ),
    SectionType.CUSTOM: SectionTypeRule(None, 180),
}


def allowed_types_for(
    section_type: SectionType,
    custom_types: Optional[Sequence[QuestionType]] = None,
) -> FrozenSet[QuestionType]:
    """Question types admitted by a section of the given type."""
    rule = SECTION_TYPE_RULES[section_type]
    if rule.allowed_types is None:
        return frozenset(custom_types or ())
    return rule.allowed_types


def default_estimated_seconds(question_type: QuestionType) -> int:
    return QUESTION_TYPE_RULES[question_type].default_estimated_seconds


def time_bucket_for(estimated_seconds: int) -> TimeBucket:
    """Bucket an estimated completion time using the configured bounds."""
    if estimated_seconds <= settings.TIME_BUCKET_QUICK_MAX_SECONDS:
        return TimeBucket.QUICK
    if estimated_seconds <= settings.TIME_BUCKET_MEDIUM_MAX_SECONDS:
        return TimeBucket.MEDIUM
    return TimeBucket.LONG
