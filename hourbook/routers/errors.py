"""Translate service exceptions into HTTP errors."""
from fastapi import HTTPException, status

from hourbook.exceptions import (
    HourbookError,
    InvalidInputError,
    InvariantViolationError,
    NotFoundError,
)


def http_error(error: HourbookError) -> HTTPException:
    """Map a domain error onto the matching HTTP status."""
    if isinstance(error, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, InvariantViolationError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(error, InvalidInputError):
        code = status.HTTP_400_BAD_REQUEST
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=str(error))
