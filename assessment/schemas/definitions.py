"""
Immutable value objects describing test definitions, sections and pools.

These are validated once at the boundary (API request or service call) and
then passed by value between assembly, validation and session code. The
ORM stores their JSON dump in ``TestDefinition``'s structure columns.
"""
import enum
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from assessment.core.config import settings
from assessment.core.datetime_utils import ensure_timezone_aware
from assessment.core.exceptions import ValidationError
from assessment.models.models import (
    Difficulty,
    QuestionType,
    SectionType,
    SelectionStrategy,
    Skill,
    TimeBucket,
)


class DistributionMode(str, enum.Enum):
    """How distribution target values are interpreted."""

    COUNT = "count"
    PERCENT = "percent"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


def _duplicates(values) -> List[Any]:
    return sorted(v for v, n in Counter(values).items() if n > 1)


class DistributionSpec(_Frozen):
    """Target counts (or percentages) per category.

    Categories are processed type -> difficulty -> skill -> time bucket, and
    within each mapping in insertion order. Earlier categories are served
    first when the candidate pool is scarce.
    """

    by_type: Dict[QuestionType, int] = Field(default_factory=dict)
    by_difficulty: Dict[Difficulty, int] = Field(default_factory=dict)
    by_skill: Dict[Skill, int] = Field(default_factory=dict)
    by_time_bucket: Dict[TimeBucket, int] = Field(default_factory=dict)
    mode: DistributionMode = DistributionMode.COUNT

    @model_validator(mode="after")
    def validate_targets(self) -> "DistributionSpec":
        for field_name in ("by_type", "by_difficulty", "by_skill", "by_time_bucket"):
            for category, value in getattr(self, field_name).items():
                if value < 0:
                    raise ValueError(
                        f"{field_name}.{category.value} must be non-negative, got {value}"
                    )
                if self.mode is DistributionMode.PERCENT and value > 100:
                    raise ValueError(
                        f"{field_name}.{category.value} must be at most 100 percent, got {value}"
                    )
        return self

    @property
    def is_empty(self) -> bool:
        return not (
            self.by_type or self.by_difficulty or self.by_skill or self.by_time_bucket
        )

    def resolve_count(self, value: int, total_questions: int) -> int:
        """Convert a target value into a question count."""
        if self.mode is DistributionMode.COUNT:
            return value
        # round half up on exact integers
        return (value * total_questions + 50) // 100


class PoolConstraints(_Frozen):
    """Ordering and variety constraints applied after selection."""

    # At most this many advanced questions adjacent; None disables the rule
    max_consecutive_difficult: Optional[int] = Field(default=None, ge=1)
    # Seed one question of every unrepresented type before the uniform fill
    ensure_variety: bool = False


class PoolEntry(_Frozen):
    """A question eligible for a pool draw."""

    question_id: int
    points: Optional[int] = Field(default=None, ge=0)
    weight: float = Field(default=1.0, gt=0)


class Pool(_Frozen):
    """Declarative spec for drawing a bounded question subset."""

    total_questions: int = Field(..., ge=1)
    selection_strategy: SelectionStrategy = SelectionStrategy.RANDOM
    available_questions: List[PoolEntry] = Field(default_factory=list)
    distribution: Optional[DistributionSpec] = None
    constraints: PoolConstraints = Field(default_factory=PoolConstraints)

    @field_validator("available_questions")
    @classmethod
    def validate_unique_entries(cls, entries: List[PoolEntry]) -> List[PoolEntry]:
        dupes = _duplicates(e.question_id for e in entries)
        if dupes:
            raise ValueError(f"duplicate question ids in pool: {dupes}")
        return entries

    def entry_map(self) -> Dict[int, PoolEntry]:
        return {e.question_id: e for e in self.available_questions}


class TestQuestionEntry(_Frozen):
    """A statically listed question. ``points=None`` uses the catalog value."""

    __test__ = False  # not a pytest test class

    question_id: int
    points: Optional[int] = Field(default=None, ge=0)
    order: int = 0


def _validate_static_list(entries: List[TestQuestionEntry]) -> List[TestQuestionEntry]:
    dupes = _duplicates(e.question_id for e in entries)
    if dupes:
        raise ValueError(f"duplicate question ids: {dupes}")
    return entries


class TestSettings(_Frozen):
    """Per-test behavior settings."""

    __test__ = False  # not a pytest test class

    time_limit_minutes: int = Field(
        default_factory=lambda: settings.DEFAULT_TIME_LIMIT_MINUTES, gt=0
    )
    attempts_allowed: int = Field(
        default_factory=lambda: settings.DEFAULT_ATTEMPTS_ALLOWED, ge=1
    )
    shuffle_questions: bool = True
    shuffle_options: bool = True
    passing_score_percent: int = Field(
        default_factory=lambda: settings.DEFAULT_PASSING_SCORE_PERCENT, ge=0, le=100
    )
    available_from: Optional[datetime] = None
    available_until: Optional[datetime] = None
    use_sections: bool = False

    @field_validator("available_from", "available_until")
    @classmethod
    def normalize_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_timezone_aware(value) if value is not None else None

    @model_validator(mode="after")
    def validate_window(self) -> "TestSettings":
        if (
            self.available_from is not None
            and self.available_until is not None
            and self.available_from > self.available_until
        ):
            raise ValueError("available_from must not be after available_until")
        return self


class Section(_Frozen):
    """Timed sub-block of a test with its own question source."""

    name: str = Field(..., min_length=1, max_length=200)
    order: int
    time_limit_minutes: int = Field(..., gt=0)
    section_type: SectionType = SectionType.MIXED
    allowed_question_types: Optional[List[QuestionType]] = None
    questions: List[TestQuestionEntry] = Field(default_factory=list)
    question_pool: Optional[Pool] = None

    @field_validator("questions")
    @classmethod
    def validate_questions(
        cls, entries: List[TestQuestionEntry]
    ) -> List[TestQuestionEntry]:
        return _validate_static_list(entries)

    @model_validator(mode="after")
    def validate_source(self) -> "Section":
        if self.section_type is SectionType.CUSTOM and not self.allowed_question_types:
            raise ValueError(
                f"section '{self.name}': custom sections must list allowed_question_types"
            )
        if self.questions and self.question_pool is not None:
            raise ValueError(
                f"section '{self.name}': use either a question list or a question pool"
            )
        return self

    @property
    def uses_pool(self) -> bool:
        return self.question_pool is not None


class TestDefinitionSpec(_Frozen):
    """Full, validated structure of a test definition."""

    __test__ = False  # not a pytest test class

    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    settings: TestSettings = Field(default_factory=TestSettings)
    questions: List[TestQuestionEntry] = Field(default_factory=list)
    sections: List[Section] = Field(default_factory=list)
    question_pool: Optional[Pool] = None

    @field_validator("questions")
    @classmethod
    def validate_questions(
        cls, entries: List[TestQuestionEntry]
    ) -> List[TestQuestionEntry]:
        return _validate_static_list(entries)

    @model_validator(mode="after")
    def validate_structure(self) -> "TestDefinitionSpec":
        if self.settings.use_sections:
            if self.questions or self.question_pool is not None:
                raise ValueError(
                    "a sectioned test must not carry flat questions or a flat pool"
                )
        else:
            if self.sections:
                raise ValueError("sections require settings.use_sections = true")
            if self.questions and self.question_pool is not None:
                raise ValueError("use either a question list or a question pool")
        return self

    def sorted_sections(self) -> List[Section]:
        return sorted(self.sections, key=lambda s: s.order)

    def to_columns(self) -> Dict[str, Any]:
        """Column values for ``TestDefinition``."""
        dumped = self.model_dump(mode="json")
        return {
            "title": dumped["title"],
            "description": dumped["description"],
            "settings": dumped["settings"],
            "questions": dumped["questions"],
            "sections": dumped["sections"],
            "question_pool": dumped["question_pool"],
        }

    @classmethod
    def from_record(cls, record: Any) -> "TestDefinitionSpec":
        """Rebuild the spec from a stored ``TestDefinition`` row."""
        return cls.model_validate(
            {
                "title": record.title,
                "description": record.description,
                "settings": record.settings or {},
                "questions": record.questions or [],
                "sections": record.sections or [],
                "question_pool": record.question_pool,
            }
        )


def error_messages(exc: PydanticValidationError) -> List[str]:
    """Flatten pydantic errors into ``location: message`` strings."""
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()))
        msg = err.get("msg", "invalid value")
        messages.append(f"{loc}: {msg}" if loc else msg)
    return messages


def parse_definition(data: Mapping[str, Any] | TestDefinitionSpec) -> TestDefinitionSpec:
    """Validate raw input into a ``TestDefinitionSpec``.

    Raises:
        ValidationError: with one message per invalid field
    """
    if isinstance(data, TestDefinitionSpec):
        return data
    try:
        return TestDefinitionSpec.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(error_messages(exc)) from exc


def parse_pool(data: Mapping[str, Any] | Pool) -> Pool:
    """Validate raw input into a ``Pool``."""
    if isinstance(data, Pool):
        return data
    try:
        return Pool.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(error_messages(exc)) from exc


def distribution_targets(
    distribution: DistributionSpec, total_questions: int
) -> List[Tuple[str, str, Any, int]]:
    """Resolved targets in processing order.

    Returns:
        List of (category_key, attribute, value, count) where category_key
        looks like ``"difficulty:advanced"`` and attribute names the
        ``QuestionRef`` field to match (``"time_bucket"`` for time buckets).
    """
    groups = (
        ("type", "question_type", distribution.by_type),
        ("difficulty", "difficulty", distribution.by_difficulty),
        ("skill", "skill", distribution.by_skill),
        ("time", "time_bucket", distribution.by_time_bucket),
    )
    targets = []
    for prefix, attribute, mapping in groups:
        for category, value in mapping.items():
            targets.append(
                (
                    f"{prefix}:{category.value}",
                    attribute,
                    category,
                    distribution.resolve_count(value, total_questions),
                )
            )
    return targets
