"""
Error taxonomy for content access and account operations.

Services raise these; `register_error_handlers` renders them as a JSON
envelope (the CSRF middleware renders its rejection the same way):

    {"error": {"code": "FORBIDDEN", "message": "...", "status": 403}}
"""

from __future__ import annotations

from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request
from starlette.responses import JSONResponse

log = structlog.get_logger()


class SecondBrainError(Exception):
    """Base class for request-scoped failures."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "status": self.status_code,
            }
        }


class NotFound(SecondBrainError):
    """Referenced entity does not exist."""

    status_code = 404
    code = "NOT_FOUND"


class Forbidden(SecondBrainError):
    """Policy denied the operation."""

    status_code = 403
    code = "FORBIDDEN"


class CSRFValidationFailed(Forbidden):
    """Cookie-authenticated write without a matching CSRF token."""

    code = "CSRF_VALIDATION_FAILED"


class Conflict(SecondBrainError):
    """Duplicate record (tag attachment, membership, email, slug)."""

    status_code = 409
    code = "CONFLICT"


class ValidationError(SecondBrainError):
    """Missing or invalid field, including cross-organization tag attachment."""

    status_code = 400
    code = "VALIDATION_ERROR"


class Unauthenticated(SecondBrainError):
    """No resolvable actor where one is required."""

    status_code = 401
    code = "UNAUTHENTICATED"


class UpstreamError(SecondBrainError):
    """A generation provider returned an error or an unusable response."""

    status_code = 502
    code = "UPSTREAM_ERROR"

    def __init__(self, message: str, *, status_code: Optional[int] = None, upstream: Any = None):
        super().__init__(message, status_code=status_code)
        self.upstream = upstream

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        if self.upstream is not None:
            body["error"]["upstream"] = self.upstream
        return body


async def _handle_second_brain_error(request: Request, exc: SecondBrainError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("request.failed", path=request.url.path, code=exc.code, message=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SecondBrainError, _handle_second_brain_error)
