"""
Translation of billing results into HTTP errors.

The core never raises to its callers; it hands back a result carrying an
`ErrorKind`. Routes turn a failed result into an HTTPException here so
every endpoint answers the same way for the same kind of failure.
"""

from typing import Any, Optional

from fastapi import HTTPException, status

from ..core.billing import ErrorKind

STATUS_FOR_KIND = {
    ErrorKind.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    # ownership failures look like missing records
    ErrorKind.UNAUTHORIZED: status.HTTP_404_NOT_FOUND,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    # the status constant for 422 was renamed in Starlette 0.48
    ErrorKind.VALIDATION_FAILED: 422,
    ErrorKind.PERSISTENCE_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def http_error(
    kind: Optional[ErrorKind],
    message: str,
    extra: Optional[dict[str, Any]] = None,
) -> HTTPException:
    """Build the HTTPException for a failed operation."""
    code = STATUS_FOR_KIND.get(kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    detail: Any = message
    if extra:
        detail = {"message": message, **extra}
    return HTTPException(status_code=code, detail=detail)
