"""
Read-only access to the question catalog.
"""
from typing import Collection, Dict, FrozenSet, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from assessment.core.assembly import QuestionRef
from assessment.core.question_types import allowed_types_for, default_estimated_seconds
from assessment.models.models import (
    Difficulty,
    Question,
    QuestionStatus,
    QuestionType,
    Skill,
)
from assessment.schemas.definitions import Section


def to_question_ref(question: Question) -> QuestionRef:
    """Project a catalog row onto the fields assembly reads."""
    estimated = question.estimated_time_seconds
    if estimated is None:
        estimated = default_estimated_seconds(question.question_type)
    return QuestionRef(
        question_id=question.id,
        question_type=question.question_type,
        skill=question.skill,
        difficulty=question.difficulty,
        points=question.points,
        estimated_time_seconds=estimated,
        weight=question.weight if question.weight is not None else 1.0,
    )


class QuestionCatalog:
    """Queries over active catalog questions.

    Each call issues a single SELECT, so one call sees one consistent
    snapshot of the catalog.
    """

    def __init__(self, db: Session):
        self.db = db

    def _active_rows(
        self,
        *,
        question_ids: Optional[Collection[int]] = None,
        types: Optional[Collection[QuestionType]] = None,
        skills: Optional[Collection[Skill]] = None,
        difficulties: Optional[Collection[Difficulty]] = None,
    ) -> List[Question]:
        query = select(Question).where(Question.status == QuestionStatus.ACTIVE)
        if question_ids is not None:
            query = query.where(Question.id.in_(list(question_ids)))
        if types is not None:
            query = query.where(Question.question_type.in_(list(types)))
        if skills is not None:
            query = query.where(Question.skill.in_(list(skills)))
        if difficulties is not None:
            query = query.where(Question.difficulty.in_(list(difficulties)))
        return list(self.db.execute(query.order_by(Question.id)).scalars().all())

    def query(
        self,
        *,
        question_ids: Optional[Collection[int]] = None,
        types: Optional[Collection[QuestionType]] = None,
        skills: Optional[Collection[Skill]] = None,
        difficulties: Optional[Collection[Difficulty]] = None,
    ) -> List[QuestionRef]:
        """
        Active questions matching every given filter, ordered by id.

        A filter left as None is not applied; an empty collection matches
        nothing.
        """
        rows = self._active_rows(
            question_ids=question_ids,
            types=types,
            skills=skills,
            difficulties=difficulties,
        )
        return [to_question_ref(q) for q in rows]

    def get_questions(self, question_ids: Collection[int]) -> Dict[int, Question]:
        """Full active rows keyed by id, for snapshotting into a session."""
        if not question_ids:
            return {}
        return {q.id: q for q in self._active_rows(question_ids=question_ids)}

    @staticmethod
    def types_for_section(section: Optional[Section]) -> FrozenSet[QuestionType]:
        """Question types a section admits; every type for flat tests."""
        if section is None:
            return frozenset(QuestionType)
        return allowed_types_for(section.section_type, section.allowed_question_types)
