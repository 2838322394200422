"""
Authentication endpoints.

- Email/Password signup & login
- JWT session cookie (+ CSRF cookie) and a Bearer token in the login body
- Email verification and avatar settings
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from second_brain.core.auth import create_jwt, generate_csrf_token, require_actor
from second_brain.core.config import Settings
from second_brain.core.database import get_session
from second_brain.core.middleware import CSRF_COOKIE, SESSION_COOKIE
from second_brain.core.policy import Actor
from second_brain.services import users as user_service
from second_brain_shared.schemas.common import MessageResponse
from second_brain_shared.schemas.users import (
    AuthResponse,
    AvatarUpdateRequest,
    LoginRequest,
    SignupRequest,
    VerifyEmailRequest,
)

log = structlog.get_logger()
router = APIRouter()


def _set_session_cookies(response: Response, settings: Settings, token: str, csrf: str) -> None:
    """Set the session JWT and CSRF cookies on a response."""
    max_age = settings.jwt_expire_minutes * 60
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        secure=not settings.debug,  # allow non-HTTPS in dev
        samesite="lax",
        path="/",
        max_age=max_age,
    )
    response.set_cookie(
        key=CSRF_COOKIE,
        value=csrf,
        httponly=False,  # JS must read this
        secure=not settings.debug,
        samesite="lax",
        path="/",
        max_age=max_age,
    )


# ---------------------------------------------------------------------------
# Signup / Login
# ---------------------------------------------------------------------------

@router.post("/signup", response_model=AuthResponse, status_code=201)
async def signup(
    body: SignupRequest,
    session: AsyncSession = Depends(get_session),
):
    """Register a new user with email/password."""
    user = await user_service.signup(body, session)
    return AuthResponse(
        user_id=str(user.id),
        email=user.email,
        message="User created successfully",
    )


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    """Authenticate with email/password and receive a JWT session."""
    settings: Settings = request.app.state.settings
    user = await user_service.authenticate(body.email, body.password, session)

    token, _jti = create_jwt(user.id, user.email, settings=settings)
    _set_session_cookies(response, settings, token, generate_csrf_token())

    log.info("auth.login_success", user_id=str(user.id))
    return AuthResponse(
        user_id=str(user.id),
        email=user.email,
        message="Login successful",
        access_token=token,
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response):
    """Clear the session cookies. Tokens are stateless and simply expire."""
    response.delete_cookie(SESSION_COOKIE, path="/")
    response.delete_cookie(CSRF_COOKIE, path="/")
    return MessageResponse(message="Logged out")


# ---------------------------------------------------------------------------
# Verification & settings
# ---------------------------------------------------------------------------

@router.post("/verify", response_model=MessageResponse)
async def verify(
    body: VerifyEmailRequest,
    session: AsyncSession = Depends(get_session),
):
    await user_service.verify_email(body.email, session)
    return MessageResponse(message="Email verified successfully", success=True)


@router.post("/settings", response_model=MessageResponse)
async def update_settings(
    body: AvatarUpdateRequest,
    actor: Actor = Depends(require_actor),
    session: AsyncSession = Depends(get_session),
):
    """Update the caller's avatar."""
    await user_service.update_avatar(actor.user_id, body.avatar_url, session)
    return MessageResponse(message="Avatar updated", success=True)
