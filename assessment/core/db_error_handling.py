"""
Database error handling for service operations.

Every mutating service operation runs inside ``handle_db_error`` so that a
failure leaves no partial mutation behind:
1. On any exception the session is rolled back
2. Domain failures (``AssessmentError``) are re-raised unchanged
3. Other database errors are logged and wrapped in ``DatabaseOperationError``

Usage:
    from assessment.core.db_error_handling import handle_db_error

    with handle_db_error(db, "publish test"):
        test.status = TestStatus.PUBLISHED
        db.commit()
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from assessment.core.exceptions import AssessmentError

logger = logging.getLogger(__name__)


class DatabaseOperationError(AssessmentError):
    """A database operation failed for reasons outside the business rules.

    Attributes:
        operation_name: Human-readable name of the operation that failed
        original_error: The underlying exception that caused the failure
    """

    def __init__(
        self,
        operation_name: str,
        original_error: Exception,
        message: Optional[str] = None,
    ):
        self.operation_name = operation_name
        self.original_error = original_error
        super().__init__(
            message or f"Failed to {operation_name}: {original_error}",
            {"operation": operation_name},
        )


@contextmanager
def handle_db_error(
    db: Session,
    operation_name: str,
    *,
    log_level: int = logging.ERROR,
) -> Generator[None, None, None]:
    """Roll back ``db`` if the wrapped block raises.

    Args:
        db: Session to roll back on error
        operation_name: Human-readable operation name for logs and messages
        log_level: Level used when logging wrapped database errors

    Raises:
        AssessmentError: re-raised unchanged after rollback
        DatabaseOperationError: wrapping any SQLAlchemyError
    """
    try:
        yield
    except AssessmentError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.log(
            log_level,
            f"Database error during {operation_name}: {e}",
            exc_info=True,
        )
        raise DatabaseOperationError(operation_name, e) from e
    except Exception:
        db.rollback()
        raise
