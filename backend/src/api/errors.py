"""
Translation of service errors into HTTP errors.

Services raise ValueError for invalid input and its NotFoundError /
PermissionDeniedError subclasses; endpoints turn them into 400 / 404 / 403.
Anything else is logged and reported as a generic 500.
"""

import logging

from fastapi import HTTPException
from fastapi import status as http_status
from sqlalchemy.orm import Session

from core.exceptions import NotFoundError, PermissionDeniedError

logger = logging.getLogger(__name__)


def service_error(db: Session, error: Exception, failure_detail: str) -> HTTPException:
    """
    Roll back the request's session and map an exception to an HTTPException.

    Must be called from inside the `except` block so unexpected errors are
    logged with their traceback.

    Args:
        db: Request database session
        error: The caught exception
        failure_detail: Detail returned to the client on unexpected errors
    """
    db.rollback()

    if isinstance(error, HTTPException):
        return error
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=http_status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, PermissionDeniedError):
        return HTTPException(status_code=http_status.HTTP_403_FORBIDDEN, detail=str(error))
    if isinstance(error, ValueError):
        return HTTPException(status_code=http_status.HTTP_400_BAD_REQUEST, detail=str(error))

    logger.exception(f"{failure_detail}: {error}")
    return HTTPException(
        status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=failure_detail,
    )
