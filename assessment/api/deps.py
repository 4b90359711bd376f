"""
Shared FastAPI dependencies.

Callers arrive pre-authorized: the identity of the acting user is taken
from the ``X-User-Id`` header set by the upstream gateway.
"""
from fastapi import Depends, Header
from sqlalchemy.orm import Session

from assessment.core.session_manager import SessionManager
from assessment.core.test_definitions import TestDefinitionService
from assessment.models import get_db


def get_current_user_id(
    x_user_id: int = Header(..., alias="X-User-Id", ge=1),
) -> int:
    """Acting user id from the gateway header."""
    return x_user_id


def get_session_manager(db: Session = Depends(get_db)) -> SessionManager:
    return SessionManager(db)


def get_test_definition_service(
    db: Session = Depends(get_db),
) -> TestDefinitionService:
    return TestDefinitionService(db)
