"""
User-facing error messages and the exception handlers that map the core
error taxonomy onto HTTP responses.

The core raises typed failures carrying structured context; this module is
the only place that turns them into response bodies.

Status mapping:
- ValidationError        -> 422, body carries ``errors``
- NotFoundError          -> 404
- ConflictError          -> 409, ActiveSessionExists adds ``existing_session_id``
- StateError             -> 409, body carries ``status``
- DatabaseOperationError -> 500

Usage:
    from assessment.core.error_responses import register_exception_handlers

    register_exception_handlers(app)
"""
import logging
import uuid
from typing import Any, Dict, Type

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from assessment.core.db_error_handling import DatabaseOperationError
from assessment.core.exceptions import (
    ActiveSessionExists,
    AssessmentError,
    AttemptLimitReached,
    ConflictError,
    DefinitionLocked,
    NoQuestionsAvailable,
    NotFoundError,
    QuestionNotInSession,
    SessionExpired,
    StateError,
    TestUnavailable,
    ValidationError,
)

logger = logging.getLogger(__name__)


class ErrorMessages:
    """Centralized user-facing error messages.

    Naming Convention:
    - Constants: SCREAMING_SNAKE_CASE for static messages
    - Methods: snake_case for templates that accept parameters
    """

    # ==========================================================================
    # Validation Errors (422)
    # ==========================================================================
    VALIDATION_FAILED = "The request could not be validated."

    # ==========================================================================
    # Not Found Errors (404)
    # ==========================================================================
    QUESTION_NOT_IN_SESSION = "This question is not part of the test session."

    @staticmethod
    def not_found(resource: str, resource_id: Any) -> str:
        return f"{resource} not found (ID: {resource_id})."

    # ==========================================================================
    # Conflict Errors (409)
    # ==========================================================================
    SESSION_ALREADY_IN_PROGRESS = (
        "You already have a test in progress. "
        "Please complete or resume your existing test."
    )
    ATTEMPT_LIMIT_REACHED = "You have used all attempts allowed for this test."
    TEST_UNAVAILABLE = "This test is not currently available."
    NO_QUESTIONS_AVAILABLE = "No questions are available for this test."
    DEFINITION_LOCKED = "This test can no longer be modified."

    # ==========================================================================
    # State Errors (409)
    # ==========================================================================
    SESSION_EXPIRED = "The time limit for this test session has passed."

    @staticmethod
    def session_not_in_progress(current_status: str) -> str:
        return f"This test session is {current_status.replace('_', ' ')}."

    # ==========================================================================
    # Server Errors (500)
    # ==========================================================================
    DATABASE_ERROR = "A database error occurred. Please try again later."


_CONFLICT_MESSAGES: Dict[Type[ConflictError], str] = {
    ActiveSessionExists: ErrorMessages.SESSION_ALREADY_IN_PROGRESS,
    AttemptLimitReached: ErrorMessages.ATTEMPT_LIMIT_REACHED,
    TestUnavailable: ErrorMessages.TEST_UNAVAILABLE,
    NoQuestionsAvailable: ErrorMessages.NO_QUESTIONS_AVAILABLE,
    DefinitionLocked: ErrorMessages.DEFINITION_LOCKED,
}


def error_body(exc: AssessmentError) -> tuple[int, Dict[str, Any]]:
    """Status code and JSON body for a core failure."""
    if isinstance(exc, ValidationError):
        return status.HTTP_422_UNPROCESSABLE_ENTITY, {
            "detail": ErrorMessages.VALIDATION_FAILED,
            "errors": exc.errors,
        }
    if isinstance(exc, QuestionNotInSession):
        return status.HTTP_404_NOT_FOUND, {
            "detail": ErrorMessages.QUESTION_NOT_IN_SESSION
        }
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND, {
            "detail": ErrorMessages.not_found(exc.resource, exc.resource_id)
        }
    if isinstance(exc, ConflictError):
        message = next(
            (m for cls, m in _CONFLICT_MESSAGES.items() if isinstance(exc, cls)),
            exc.message,
        )
        body: Dict[str, Any] = {"detail": message, "code": type(exc).__name__}
        if isinstance(exc, ActiveSessionExists):
            body["existing_session_id"] = exc.session_id
        return status.HTTP_409_CONFLICT, body
    if isinstance(exc, SessionExpired):
        return status.HTTP_409_CONFLICT, {
            "detail": ErrorMessages.SESSION_EXPIRED,
            "status": exc.current_status,
        }
    if isinstance(exc, StateError):
        return status.HTTP_409_CONFLICT, {
            "detail": ErrorMessages.session_not_in_progress(exc.current_status),
            "status": exc.current_status,
        }
    if isinstance(exc, DatabaseOperationError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR, {
            "detail": ErrorMessages.DATABASE_ERROR
        }
    return status.HTTP_400_BAD_REQUEST, {"detail": exc.message}


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers for the core error taxonomy and unexpected errors."""

    @app.exception_handler(AssessmentError)
    async def assessment_error_handler(request: Request, exc: AssessmentError):
        """
        Map a core failure to its HTTP response.
        """
        status_code, body = error_body(exc)
        if status_code >= 500:
            logger.error(
                f"Request failed: {exc}",
                extra={"path": str(request.url.path), "status_code": status_code},
            )
        return JSONResponse(status_code=status_code, content=body)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """
        Handle unexpected exceptions.

        Generates a unique error_id for each exception so a report can be
        matched to the logged stack trace.
        """
        error_id = str(uuid.uuid4())
        logger.exception(
            f"Unhandled exception [error_id={error_id}]: {exc}",
            extra={"path": str(request.url.path)},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred. Please try again later.",
                "error_id": error_id,
            },
        )
