"""
Workflow failure -> HTTP response mapping.
"""
from typing import Any, Dict

from fastapi import HTTPException, status

from orchestration import ErrorKind, Failure


STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.EXTERNAL_PROVIDER: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def failure_detail(failure: Failure) -> Dict[str, Any]:
    return {"kind": failure.kind.value, "message": failure.message}


def raise_for_failure(failure: Failure) -> None:
    """
    Raise the HTTPException matching the failure kind.

    Raises:
        HTTPException: Always
    """
    raise HTTPException(
        status_code=STATUS_BY_KIND.get(failure.kind, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=failure_detail(failure),
    )
