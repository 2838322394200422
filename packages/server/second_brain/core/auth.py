"""
Authentication for Second Brain.

Supports:
- Email/Password credentials (bcrypt)
- JWT sessions, sent as a Bearer token or the `sb_session` cookie
- Actor resolution: user + organization roles, or None for anonymous requests
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from second_brain.core.config import Settings, get_settings
from second_brain.core.database import get_session
from second_brain.core.errors import Forbidden, Unauthenticated
from second_brain.core.middleware import SESSION_COOKIE
from second_brain.core.policy import Actor
from second_brain.models.membership import Membership
from second_brain.models.user import User
from second_brain_shared.schemas.common import MembershipRole

log = structlog.get_logger()

authorization_header = APIKeyHeader(name="Authorization", auto_error=False)

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    """Hash a password using bcrypt with cost factor 12."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12)).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash."""
    return bcrypt.checkpw(password.encode(), hashed.encode())


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    user_id: uuid.UUID,
    email: str,
    *,
    settings: Settings | None = None,
    expires_delta: timedelta | None = None,
) -> tuple[str, str]:
    """Create a signed JWT. Returns (token, jti)."""
    settings = settings or get_settings()
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": str(user_id),
        "email": email,
        "iat": now,
        "exp": exp,
        "jti": jti,
    }
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, jti


def decode_jwt(token: str, *, settings: Settings | None = None) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    settings = settings or get_settings()
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


# ---------------------------------------------------------------------------
# CSRF Token
# ---------------------------------------------------------------------------

def generate_csrf_token() -> str:
    """Generate a random CSRF token."""
    return secrets.token_urlsafe(32)


# ---------------------------------------------------------------------------
# Actor resolution
# ---------------------------------------------------------------------------

async def load_memberships(
    user_id: uuid.UUID, session: AsyncSession
) -> dict[uuid.UUID, MembershipRole]:
    """Map organization id -> role for every organization the user belongs to."""
    result = await session.execute(
        select(Membership).where(Membership.user_id == user_id)
    )
    return {m.organization_id: MembershipRole(m.role) for m in result.scalars().all()}


async def build_actor(user: User, session: AsyncSession) -> Actor:
    return Actor(
        user_id=user.id,
        email=user.email,
        email_verified=user.email_verified,
        memberships=await load_memberships(user.id, session),
    )


def _extract_token(request: Request, authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return request.cookies.get(SESSION_COOKIE)


async def get_optional_actor(
    request: Request,
    authorization: Optional[str] = Depends(authorization_header),
    session: AsyncSession = Depends(get_session),
) -> Optional[Actor]:
    """Resolve the caller. Returns None when no credentials are presented.

    Presented-but-invalid credentials are an error, not an anonymous request.
    """
    token = _extract_token(request, authorization)
    if not token:
        return None

    settings: Settings = request.app.state.settings
    try:
        payload = decode_jwt(token, settings=settings)
        user_id = uuid.UUID(payload["sub"])
    except (jwt.PyJWTError, KeyError, ValueError):
        raise Unauthenticated("Invalid or expired session")

    user = await session.get(User, user_id)
    if not user:
        raise Unauthenticated("User not found")

    actor = await build_actor(user, session)
    request.state.actor = actor
    return actor


async def require_actor(
    actor: Optional[Actor] = Depends(get_optional_actor),
) -> Actor:
    """Any authenticated user can access this endpoint."""
    if actor is None:
        raise Unauthenticated("Authentication required")
    return actor


async def require_verified_actor(
    request: Request,
    actor: Actor = Depends(require_actor),
) -> Actor:
    """Authenticated, and verified when SB_REQUIRE_VERIFIED_EMAIL is on."""
    settings: Settings = request.app.state.settings
    if settings.require_verified_email and not actor.is_verified:
        log.info("auth.unverified_rejected", user_id=str(actor.user_id))
        raise Forbidden("Email address has not been verified")
    return actor
