"""
Test definition endpoints: authoring, validation, publishing and starting
attempts.
"""
from typing import Optional

from fastapi import APIRouter, Depends, status

from assessment.api.deps import (
    get_current_user_id,
    get_session_manager,
    get_test_definition_service,
)
from assessment.api.v1.sessions import build_session_response
from assessment.core.session_manager import SessionManager
from assessment.core.test_definitions import TestDefinitionService
from assessment.schemas.definitions import TestDefinitionSpec
from assessment.schemas.sessions import SessionResponse
from assessment.schemas.tests import (
    AssemblyReportResponse,
    PublishRequest,
    PublishResponse,
    TestDefinitionResponse,
    ValidationResponse,
)

router = APIRouter()


@router.post(
    "",
    response_model=TestDefinitionResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_test(
    spec: TestDefinitionSpec,
    service: TestDefinitionService = Depends(get_test_definition_service),
):
    """
    Create a draft test definition.
    """
    return service.create(spec)


@router.put("/{test_id}", response_model=TestDefinitionResponse)
def update_test(
    test_id: int,
    spec: TestDefinitionSpec,
    service: TestDefinitionService = Depends(get_test_definition_service),
):
    """
    Replace a test definition's content.

    Allowed while the test is a draft, or published with no attempts yet.
    """
    return service.update(test_id, spec)


@router.get("/{test_id}/validation", response_model=ValidationResponse)
def validate_test(
    test_id: int,
    service: TestDefinitionService = Depends(get_test_definition_service),
):
    """
    Check whether a test definition can be published.
    """
    result = service.validate_sections(test_id)
    return ValidationResponse(
        valid=result.valid, errors=result.errors, warnings=result.warnings
    )


@router.post("/{test_id}/publish", response_model=PublishResponse)
def publish_test(
    test_id: int,
    request: Optional[PublishRequest] = None,
    service: TestDefinitionService = Depends(get_test_definition_service),
):
    """
    Validate and publish a test definition.

    Validation errors are returned as 422 with the error list.
    """
    block_on_shortfall = request.block_on_shortfall if request else False
    result = service.publish(test_id, block_on_shortfall=block_on_shortfall)
    return PublishResponse(
        test=TestDefinitionResponse.model_validate(result.test),
        validation=ValidationResponse(
            valid=result.validation.valid,
            errors=result.validation.errors,
            warnings=result.validation.warnings,
        ),
        reports={
            key: AssemblyReportResponse(
                requested=report.requested,
                selected=report.selected,
                shortfall_by_category=report.shortfall_by_category,
                unmet_targets=report.unmet_targets,
                strategy=report.strategy,
            )
            for key, report in result.reports.items()
        },
    )


@router.post(
    "/{test_id}/sessions",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
)
def start_session(
    test_id: int,
    user_id: int = Depends(get_current_user_id),
    manager: SessionManager = Depends(get_session_manager),
):
    """
    Start a new attempt at a published test.

    Returns 409 with ``existing_session_id`` when the user already has an
    attempt in progress, so the client can resume it.
    """
    session = manager.start(test_id, user_id)
    return build_session_response(manager, session)
