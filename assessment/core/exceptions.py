"""
Typed failures raised by the assessment core.

Every operation either returns a result or raises one of these. The HTTP
layer maps them onto status codes (see ``assessment.core.error_responses``); the
core itself never formats user-facing text beyond the ``message`` below.

Hierarchy:
    AssessmentError
    ├── ValidationError          malformed definition, pool or section input
    ├── NotFoundError            test, session or question id does not exist
    │   └── QuestionNotInSession
    ├── ConflictError            business-rule conflicts
    │   ├── ActiveSessionExists  carries the resumable session id
    │   ├── AttemptLimitReached
    │   ├── TestUnavailable
    │   ├── NoQuestionsAvailable
    │   └── DefinitionLocked
    └── StateError               operation illegal in the session's state
        └── SessionExpired
"""
from typing import Any, Dict, List, Optional


class AssessmentError(Exception):
    """Base class for all assessment core failures.

    Attributes:
        message: Short description of the failure
        context: Structured details the caller can act on without re-querying
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.context:
            details = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({details})"
        return self.message


class ValidationError(AssessmentError):
    """Malformed test definition, pool or section input. Never retried."""

    def __init__(self, errors: List[str], message: str = "Validation failed"):
        self.errors = list(errors)
        super().__init__(message, {"errors": self.errors})


class NotFoundError(AssessmentError):
    """A referenced resource does not exist."""

    def __init__(self, resource: str, resource_id: Any):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            f"{resource} not found",
            {"resource": resource, "resource_id": resource_id},
        )


class QuestionNotInSession(NotFoundError):
    """The question id is not part of the session's snapshot."""

    def __init__(self, session_id: int, question_id: int):
        self.session_id = session_id
        super().__init__("Question", question_id)
        self.message = "Question is not part of this session"
        self.context["session_id"] = session_id


class ConflictError(AssessmentError):
    """Business-rule conflict."""


class ActiveSessionExists(ConflictError):
    """The user already has an in-progress attempt at this test."""

    def __init__(self, session_id: Optional[int]):
        self.session_id = session_id
        super().__init__(
            "An active session already exists for this test",
            {"existing_session_id": session_id},
        )


class AttemptLimitReached(ConflictError):
    """The user has used every attempt the test allows."""

    def __init__(self, attempts_allowed: int, attempts_used: int):
        self.attempts_allowed = attempts_allowed
        self.attempts_used = attempts_used
        super().__init__(
            "Maximum attempts reached for this test",
            {"attempts_allowed": attempts_allowed, "attempts_used": attempts_used},
        )


class TestUnavailable(ConflictError):
    """The test is not published or is outside its availability window."""

    __test__ = False  # not a pytest test class

    def __init__(self, test_id: int, reason: str):
        self.test_id = test_id
        self.reason = reason
        super().__init__(
            "Test is not currently available",
            {"test_id": test_id, "reason": reason},
        )


class NoQuestionsAvailable(ConflictError):
    """Materialization produced an empty question list."""

    def __init__(self, test_id: int):
        self.test_id = test_id
        super().__init__(
            "No questions available for this test", {"test_id": test_id}
        )


class DefinitionLocked(ConflictError):
    """The test definition can no longer be edited."""

    def __init__(self, test_id: int, reason: str):
        self.test_id = test_id
        self.reason = reason
        super().__init__(
            "Test definition cannot be modified",
            {"test_id": test_id, "reason": reason},
        )


class StateError(AssessmentError):
    """Operation attempted on a session in the wrong state."""

    def __init__(self, session_id: int, current_status: str, message: Optional[str] = None):
        self.session_id = session_id
        self.current_status = current_status
        super().__init__(
            message or f"Session is {current_status}",
            {"session_id": session_id, "status": current_status},
        )


class SessionExpired(StateError):
    """The session's time limit has elapsed."""

    def __init__(self, session_id: int):
        super().__init__(session_id, "expired", "Session time limit has expired")
