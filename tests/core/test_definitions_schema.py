"""
Tests for test definition value objects and their parsing helpers.
"""
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from assessment.core.exceptions import ValidationError
from assessment.models.models import QuestionType, SectionType, SelectionStrategy
from assessment.schemas.definitions import (
    DistributionMode,
    DistributionSpec,
    Pool,
    Section,
    TestDefinitionSpec,
    TestSettings,
    distribution_targets,
    parse_definition,
    parse_pool,
)


class TestDistributionSpec:
    """Tests for distribution targets."""

    def test_negative_target_rejected(self):
        with pytest.raises(PydanticValidationError, match="non-negative"):
            DistributionSpec(by_type={"true_false": -1})

    def test_percent_above_hundred_rejected(self):
        with pytest.raises(PydanticValidationError, match="at most 100"):
            DistributionSpec(by_difficulty={"beginner": 120}, mode="percent")

    def test_count_mode_allows_large_values(self):
        spec = DistributionSpec(by_difficulty={"beginner": 120})
        assert spec.resolve_count(120, 5) == 120

    @pytest.mark.parametrize(
        "value,total,expected",
        [(50, 5, 3), (30, 5, 2), (10, 5, 1), (25, 10, 3), (20, 10, 2), (0, 10, 0)],
    )
    def test_percent_rounds_half_up(self, value, total, expected):
        spec = DistributionSpec(mode=DistributionMode.PERCENT)
        assert spec.resolve_count(value, total) == expected

    def test_is_empty(self):
        assert DistributionSpec().is_empty
        assert not DistributionSpec(by_skill={"css": 1}).is_empty

    def test_targets_follow_processing_order(self):
        spec = DistributionSpec(
            by_time_bucket={"long": 1},
            by_skill={"react": 2},
            by_difficulty={"advanced": 1, "beginner": 2},
            by_type={"true_false": 3},
        )

        keys = [key for key, _, _, _ in distribution_targets(spec, 10)]

        assert keys == [
            "type:true_false",
            "difficulty:advanced",
            "difficulty:beginner",
            "skill:react",
            "time:long",
        ]

    def test_time_targets_match_on_bucket(self):
        spec = DistributionSpec(by_time_bucket={"quick": 4})
        [(_, attribute, _, count)] = distribution_targets(spec, 10)
        assert attribute == "time_bucket"
        assert count == 4


class TestPool:
    """Tests for pool specs."""

    def test_defaults(self):
        pool = Pool(total_questions=5)

        assert pool.selection_strategy is SelectionStrategy.RANDOM
        assert pool.available_questions == []
        assert pool.constraints.max_consecutive_difficult is None
        assert pool.constraints.ensure_variety is False

    def test_total_must_be_positive(self):
        with pytest.raises(PydanticValidationError):
            Pool(total_questions=0)

    def test_duplicate_entries_rejected(self):
        with pytest.raises(PydanticValidationError, match="duplicate question ids"):
            Pool(
                total_questions=2,
                available_questions=[{"question_id": 3}, {"question_id": 3}],
            )

    def test_weight_must_be_positive(self):
        with pytest.raises(PydanticValidationError):
            Pool(total_questions=1, available_questions=[{"question_id": 1, "weight": 0}])

    def test_pool_is_immutable(self):
        pool = Pool(total_questions=5)
        with pytest.raises(PydanticValidationError):
            pool.total_questions = 6

    def test_unknown_fields_rejected(self):
        with pytest.raises(PydanticValidationError):
            Pool(total_questions=5, strategy="random")

    def test_parse_pool_raises_core_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_pool({"total_questions": -1})

        assert exc_info.value.errors
        assert exc_info.value.errors[0].startswith("total_questions:")


class TestSettingsValidation:
    """Tests for per-test settings."""

    def test_defaults_come_from_configuration(self):
        settings = TestSettings()

        assert settings.time_limit_minutes == 60
        assert settings.attempts_allowed == 1
        assert settings.passing_score_percent == 70
        assert settings.shuffle_questions is True
        assert settings.use_sections is False

    def test_window_must_be_ordered(self):
        with pytest.raises(PydanticValidationError, match="available_from"):
            TestSettings(
                available_from=datetime(2026, 5, 2, tzinfo=timezone.utc),
                available_until=datetime(2026, 5, 1, tzinfo=timezone.utc),
            )

    def test_naive_window_is_treated_as_utc(self):
        settings = TestSettings(available_from=datetime(2026, 5, 1, 12, 0))
        assert settings.available_from.tzinfo is not None

    @pytest.mark.parametrize("passing", [-1, 101])
    def test_passing_score_range(self, passing):
        with pytest.raises(PydanticValidationError):
            TestSettings(passing_score_percent=passing)


class TestSections:
    """Tests for section specs."""

    def test_custom_section_requires_types(self):
        with pytest.raises(PydanticValidationError, match="allowed_question_types"):
            Section(name="Mixed bag", order=1, time_limit_minutes=10, section_type="custom")

    def test_list_and_pool_are_exclusive(self):
        with pytest.raises(PydanticValidationError, match="either a question list"):
            Section(
                name="Warmup",
                order=1,
                time_limit_minutes=10,
                questions=[{"question_id": 1}],
                question_pool={"total_questions": 2},
            )

    def test_duplicate_questions_rejected(self):
        with pytest.raises(PydanticValidationError, match="duplicate question ids"):
            Section(
                name="Warmup",
                order=1,
                time_limit_minutes=10,
                questions=[{"question_id": 1}, {"question_id": 1}],
            )

    def test_uses_pool(self):
        section = Section(
            name="Coding",
            order=2,
            time_limit_minutes=30,
            section_type=SectionType.CODING,
            question_pool={"total_questions": 2},
        )
        assert section.uses_pool


class TestDefinitionStructure:
    """Tests for whole-definition structure rules."""

    def test_sections_require_flag(self):
        with pytest.raises(PydanticValidationError, match="use_sections"):
            TestDefinitionSpec(
                title="Frontend",
                sections=[{"name": "A", "order": 1, "time_limit_minutes": 10}],
            )

    def test_sectioned_test_rejects_flat_questions(self):
        with pytest.raises(PydanticValidationError, match="flat questions"):
            TestDefinitionSpec(
                title="Frontend",
                settings={"use_sections": True},
                questions=[{"question_id": 1}],
            )

    def test_flat_list_and_pool_are_exclusive(self):
        with pytest.raises(PydanticValidationError, match="either a question list"):
            TestDefinitionSpec(
                title="Frontend",
                questions=[{"question_id": 1}],
                question_pool={"total_questions": 3},
            )

    def test_sorted_sections(self):
        spec = TestDefinitionSpec(
            title="Frontend",
            settings={"use_sections": True},
            sections=[
                {"name": "Second", "order": 2, "time_limit_minutes": 10},
                {"name": "First", "order": 1, "time_limit_minutes": 10},
            ],
        )
        assert [s.name for s in spec.sorted_sections()] == ["First", "Second"]

    def test_columns_round_trip_through_a_record(self):
        spec = TestDefinitionSpec(
            title="Frontend",
            description="HTML and CSS basics",
            settings={"time_limit_minutes": 45},
            question_pool={
                "total_questions": 4,
                "selection_strategy": "balanced",
                "distribution": {"by_type": {"multiple_choice": 2}},
            },
        )

        class Record:
            pass

        record = Record()
        for column, value in spec.to_columns().items():
            setattr(record, column, value)

        assert TestDefinitionSpec.from_record(record).model_dump() == spec.model_dump()

    def test_columns_are_json_ready(self):
        spec = TestDefinitionSpec(
            title="Frontend",
            question_pool={"total_questions": 2, "distribution": {"by_type": {"true_false": 1}}},
        )

        columns = spec.to_columns()

        assert columns["question_pool"]["distribution"]["by_type"] == {"true_false": 1}
        assert columns["question_pool"]["selection_strategy"] == "random"

    def test_parse_definition_collects_every_error(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_definition(
                {
                    "title": "",
                    "settings": {"time_limit_minutes": 0},
                }
            )

        errors = exc_info.value.errors
        assert any(e.startswith("title:") for e in errors)
        assert any(e.startswith("settings.time_limit_minutes:") for e in errors)

    def test_parse_definition_passes_specs_through(self):
        spec = TestDefinitionSpec(title="Frontend")
        assert parse_definition(spec) is spec

    def test_custom_section_types_are_kept(self):
        spec = parse_definition(
            {
                "title": "Frontend",
                "settings": {"use_sections": True},
                "sections": [
                    {
                        "name": "Quick checks",
                        "order": 1,
                        "time_limit_minutes": 5,
                        "section_type": "custom",
                        "allowed_question_types": ["true_false"],
                        "questions": [{"question_id": 1}],
                    }
                ],
            }
        )
        assert spec.sections[0].allowed_question_types == [QuestionType.TRUE_FALSE]
