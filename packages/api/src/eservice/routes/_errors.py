# This project was developed with assistance from AI tools.
"""Map workflow engine errors onto HTTP status codes."""

import logging

from fastapi import HTTPException, status

from ..services.errors import (
    InvalidTaskTransitionError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
)

logger = logging.getLogger(__name__)


def to_http_exception(exc: Exception) -> HTTPException:
    """HTTPException for an engine error; anything unrecognised becomes a 422."""
    if isinstance(exc, (InvalidTransitionError, InvalidTaskTransitionError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, PersistenceError):
        logger.error("Persistence failure: %s", exc)
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Storage is temporarily unavailable",
        )
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
