"""
Structural checks for sectioned test definitions before publish.

Errors block publishing; warnings are informational. The two are
independent, so a definition can publish with warnings.
"""
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from assessment.core.assembly import AssemblyReport
from assessment.core.config import settings
from assessment.core.question_types import SECTION_TYPE_RULES
from assessment.schemas.definitions import Section, TestDefinitionSpec


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a structural validation."""

    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def estimated_section_seconds(section: Section) -> int:
    """Suggested seconds per question for the section type times its question count."""
    if section.question_pool is not None:
        count = section.question_pool.total_questions
    else:
        count = len(section.questions)
    return count * SECTION_TYPE_RULES[section.section_type].suggested_seconds


def validate_sections(
    spec: TestDefinitionSpec,
    pool_reports: Optional[Mapping[int, AssemblyReport]] = None,
) -> ValidationResult:
    """
    Validate the section structure of a test definition.

    Only runs when ``settings.use_sections`` is set; flat tests are
    reported valid.

    Args:
        spec: Definition to check
        pool_reports: Dry-run assembly reports keyed by the index of the
            section in ``spec.sections``. A pool section whose report says
            zero questions were selected is an error.

    Returns:
        ValidationResult
    """
    if not spec.settings.use_sections:
        return ValidationResult(valid=True)

    pool_reports = pool_reports or {}
    errors: List[str] = []
    warnings: List[str] = []

    if not spec.sections:
        errors.append("Test uses sections but defines none")

    order_counts = Counter(s.order for s in spec.sections)
    for order, count in sorted(order_counts.items()):
        if count > 1:
            errors.append(f"Duplicate section order {order} ({count} sections)")

    for index, section in enumerate(spec.sections):
        label = f"Section '{section.name}'"
        report = pool_reports.get(index)

        if section.question_pool is not None:
            if report is not None and report.selected == 0:
                errors.append(f"{label} pool resolved to no questions")
            elif report is not None and report.has_shortfall:
                warnings.append(
                    f"{label} pool selected {report.selected} of "
                    f"{report.requested} requested questions"
                    + (
                        f"; unmet targets: {report.unmet_targets}"
                        if report.unmet_targets
                        else ""
                    )
                )
        elif not section.questions:
            errors.append(f"{label} has no questions")

        estimated = estimated_section_seconds(section)
        allowed = section.time_limit_minutes * 60 * settings.SECTION_TIME_WARNING_RATIO
        if estimated > allowed:
            warnings.append(
                f"{label} may need more time: estimated {math.ceil(estimated / 60)} minutes "
                f"for a {section.time_limit_minutes} minute limit"
            )

    total_minutes = sum(s.time_limit_minutes for s in spec.sections)
    if total_minutes > settings.MAX_TOTAL_SECTION_MINUTES:
        warnings.append(
            f"Total section time is {total_minutes} minutes; "
            "consider splitting into multiple tests"
        )

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)
