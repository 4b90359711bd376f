"""
Pydantic schemas for test definition endpoints.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from assessment.models.models import SelectionStrategy, TestStatus
from assessment.schemas.definitions import (
    Pool,
    Section,
    TestQuestionEntry,
    TestSettings,
)


class TestDefinitionResponse(BaseModel):
    """Schema for a stored test definition."""

    __test__ = False  # not a pytest test class

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Test definition ID")
    title: str = Field(..., description="Test title")
    description: Optional[str] = Field(None, description="Test description")
    status: TestStatus = Field(..., description="draft, published or archived")
    settings: TestSettings = Field(..., description="Timing, attempts and scoring settings")
    questions: List[TestQuestionEntry] = Field(
        default_factory=list, description="Static questions (flat tests)"
    )
    sections: List[Section] = Field(
        default_factory=list, description="Sections (sectioned tests)"
    )
    question_pool: Optional[Pool] = Field(None, description="Pool (flat pool tests)")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")
    published_at: Optional[datetime] = Field(None, description="Publish timestamp")


class ValidationResponse(BaseModel):
    """Schema for a publish-readiness validation."""

    valid: bool = Field(..., description="True when there are no errors")
    errors: List[str] = Field(default_factory=list, description="Blocking problems")
    warnings: List[str] = Field(
        default_factory=list, description="Informational problems"
    )


class AssemblyReportResponse(BaseModel):
    """Schema for a pool dry-run report."""

    requested: int = Field(..., description="Questions requested by the pool")
    selected: int = Field(..., description="Questions the catalog could supply")
    shortfall_by_category: Dict[str, int] = Field(
        default_factory=dict, description="Deficit attributed to categories"
    )
    unmet_targets: Dict[str, int] = Field(
        default_factory=dict, description="Per-category distribution targets not met"
    )
    strategy: SelectionStrategy = Field(..., description="Selection strategy used")


class PublishRequest(BaseModel):
    """Schema for publishing a test definition."""

    block_on_shortfall: bool = Field(
        False, description="Refuse to publish when any pool has a shortfall"
    )


class PublishResponse(BaseModel):
    """Schema for a successful publish."""

    test: TestDefinitionResponse = Field(..., description="Published test")
    validation: ValidationResponse = Field(..., description="Validation outcome")
    reports: Dict[str, AssemblyReportResponse] = Field(
        default_factory=dict, description="Pool dry-run reports keyed by location"
    )
