"""
Security middleware: response headers for the API and stored uploads, and
double-submit CSRF protection for cookie sessions.
"""

from __future__ import annotations

import secrets
from typing import Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from second_brain.core.errors import CSRFValidationFailed

log = structlog.get_logger()

SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}

SESSION_COOKIE = "sb_session"
CSRF_COOKIE = "sb_csrf"
CSRF_HEADER = "X-CSRF-Token"

# Signing in issues a fresh CSRF cookie, so a stale session must not block it
CSRF_EXEMPT_PATHS = frozenset({"/auth/login", "/auth/signup"})

# ---------------------------------------------------------------------------
# Security Headers
# ---------------------------------------------------------------------------

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "0",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    # JSON API plus the Swagger UI at /docs
    "Content-Security-Policy": (
        "default-src 'none'; "
        "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "img-src 'self' data: https://fastapi.tiangolo.com; "
        "connect-src 'self'; "
        "frame-ancestors 'none';"
    ),
}

# Uploaded files are user content: never let them run script in our origin
UPLOAD_CSP = "sandbox; default-src 'none'; img-src 'self' data:; media-src 'self'"

HSTS_HEADER = ("Strict-Transport-Security", "max-age=63072000; includeSubDomains")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach security headers; stored uploads get a sandboxing policy."""

    def __init__(self, app: ASGIApp, *, hsts: bool = True, upload_prefix: Optional[str] = None):
        super().__init__(app)
        self.headers = dict(SECURITY_HEADERS)
        if hsts:
            self.headers[HSTS_HEADER[0]] = HSTS_HEADER[1]
        self.upload_prefix = f"{upload_prefix.rstrip('/')}/" if upload_prefix else None

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        for header, value in self.headers.items():
            response.headers[header] = value
        if self.upload_prefix and request.url.path.startswith(self.upload_prefix):
            response.headers["Content-Security-Policy"] = UPLOAD_CSP
        return response


# ---------------------------------------------------------------------------
# CSRF Protection (Double-Submit Cookie)
# ---------------------------------------------------------------------------

class CSRFMiddleware(BaseHTTPMiddleware):
    """
    Double-submit cookie CSRF protection for browser sessions.

    Enforced only on unsafe methods that carry the session cookie and no
    Authorization header. Sign-in routes are exempt.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        if (
            request.method in SAFE_METHODS
            or request.headers.get("Authorization")
            or SESSION_COOKIE not in request.cookies
            or request.url.path in CSRF_EXEMPT_PATHS
        ):
            return await call_next(request)

        cookie_token = (request.cookies.get(CSRF_COOKIE) or "").encode()
        header_token = (request.headers.get(CSRF_HEADER) or "").encode()

        if not cookie_token or not secrets.compare_digest(cookie_token, header_token):
            log.warning("csrf.rejected", path=request.url.path, method=request.method)
            exc = CSRFValidationFailed("Invalid or missing CSRF token.")
            return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

        return await call_next(request)
