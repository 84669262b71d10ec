"""Error envelope shared by endpoints and exception handlers."""

from __future__ import annotations

from typing import Any, NoReturn

from fastapi import HTTPException

from diffscope.errors import BlobTooLargeError, DiffError, DiffscopeError
from diffscope.models import ErrorDetail, ErrorResponse


def error_body(code: str, message: str, details: Any = None) -> dict:
    detail = ErrorDetail(code=code, message=message, details=details)
    return ErrorResponse(error=detail).model_dump()


def classify_error(exc: DiffscopeError, *, git_status: int = 500) -> tuple[int, str]:
    """Return ``(status_code, code)`` for a domain error.

    ``git_status`` is used for plain git failures: a missing blob is a 404
    for content endpoints but a server error anywhere else.
    """
    if isinstance(exc, DiffError):
        return 400, "DIFF_ERROR"
    if isinstance(exc, BlobTooLargeError):
        return 413, "BLOB_TOO_LARGE"
    if git_status == 404:
        return 404, "NOT_FOUND"
    return git_status, "GIT_ERROR"


def raise_http_error(code: str, message: str, status_code: int) -> NoReturn:
    """Raise an HTTPException carrying the error envelope as its detail."""
    raise HTTPException(status_code=status_code, detail=error_body(code, message))


def raise_domain_error(exc: DiffscopeError, *, git_status: int = 500) -> NoReturn:
    status_code, code = classify_error(exc, git_status=git_status)
    raise_http_error(code, str(exc), status_code)
