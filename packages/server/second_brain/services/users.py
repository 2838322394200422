"""
Signup, credential checks, profile and provider keys.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from second_brain.core.auth import hash_password, verify_password
from second_brain.core.errors import Conflict, NotFound, Unauthenticated
from second_brain.models.membership import Membership
from second_brain.models.organization import Organization
from second_brain.models.user import User
from second_brain_shared.schemas.common import Provider
from second_brain_shared.schemas.users import (
    ApiKeyStoreRequest,
    ProfileUpdateRequest,
    SignupRequest,
)

log = structlog.get_logger()


async def get_user_by_email(email: str, session: AsyncSession) -> User | None:
    result = await session.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def get_user_or_404(user_id: uuid.UUID, session: AsyncSession) -> User:
    user = await session.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


async def signup(req: SignupRequest, session: AsyncSession) -> User:
    """Create a user with a bcrypt-hashed password."""
    if await get_user_by_email(req.email, session):
        raise Conflict("Email already in use")

    user = User(
        email=req.email,
        name=req.name,
        password_hash=hash_password(req.password),
    )
    session.add(user)
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise Conflict("Email already in use")

    log.info("user.registered", user_id=str(user.id), email=req.email)
    return user


async def authenticate(email: str, password: str, session: AsyncSession) -> User:
    """Check email/password credentials; raises Unauthenticated on mismatch."""
    user = await get_user_by_email(email, session)
    if not user or not user.password_hash:
        log.warning("auth.login_failure", email=email, reason="unknown_user")
        raise Unauthenticated("Invalid email or password")

    if not verify_password(password, user.password_hash):
        log.warning("auth.login_failure", email=email, reason="bad_password")
        raise Unauthenticated("Invalid email or password")

    return user


async def verify_email(email: str, session: AsyncSession) -> User:
    user = await get_user_by_email(email, session)
    if not user:
        raise NotFound("User not found")

    user.email_verified = datetime.now(timezone.utc)
    user.updated_at = datetime.now(timezone.utc)
    session.add(user)
    await session.flush()

    log.info("user.verified", user_id=str(user.id))
    return user


async def update_avatar(user_id: uuid.UUID, avatar_url: str, session: AsyncSession) -> User:
    user = await get_user_or_404(user_id, session)
    user.avatar_url = avatar_url
    user.updated_at = datetime.now(timezone.utc)
    session.add(user)
    await session.flush()
    log.info("user.avatar_updated", user_id=str(user_id))
    return user


async def update_profile(
    user_id: uuid.UUID, req: ProfileUpdateRequest, session: AsyncSession
) -> User:
    """Apply name/image changes; fields absent from the request are left alone."""
    user = await get_user_or_404(user_id, session)
    changes = req.model_dump(exclude_unset=True)
    if "name" in changes:
        user.name = changes["name"]
    if "image" in changes:
        user.avatar_url = changes["image"]

    user.updated_at = datetime.now(timezone.utc)
    session.add(user)
    await session.flush()
    log.info("user.updated", user_id=str(user_id), fields=sorted(changes))
    return user


async def get_profile(user_id: uuid.UUID, session: AsyncSession) -> dict:
    """The caller's profile with organization memberships expanded."""
    user = await get_user_or_404(user_id, session)
    result = await session.execute(
        select(Membership, Organization)
        .join(Organization, Organization.id == Membership.organization_id)
        .where(Membership.user_id == user_id)
        .order_by(Organization.name)
    )
    memberships = [
        {
            "organization_id": org.id,
            "role": m.role,
            "organization": {"id": org.id, "name": org.name, "slug": org.slug},
        }
        for m, org in result.all()
    ]
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "avatar_url": user.avatar_url,
        "email_verified": user.email_verified,
        "has_openai_key": bool(user.api_key_openai),
        "has_gemini_key": bool(user.api_key_gemini),
        "memberships": memberships,
        "created_at": user.created_at,
    }


# ---------------------------------------------------------------------------
# Provider API keys
# ---------------------------------------------------------------------------

def stored_api_key(user: User, provider: Provider) -> str | None:
    if provider == Provider.OPENAI:
        return user.api_key_openai
    return user.api_key_gemini


async def api_key_status(user_id: uuid.UUID, session: AsyncSession) -> dict:
    user = await get_user_or_404(user_id, session)
    return {"openai": bool(user.api_key_openai), "gemini": bool(user.api_key_gemini)}


async def store_api_key(
    user_id: uuid.UUID, req: ApiKeyStoreRequest, session: AsyncSession
) -> None:
    user = await get_user_or_404(user_id, session)
    if req.provider == Provider.OPENAI:
        user.api_key_openai = req.api_key
    else:
        user.api_key_gemini = req.api_key

    user.updated_at = datetime.now(timezone.utc)
    session.add(user)
    await session.flush()
    log.info("api_key.stored", user_id=str(user_id), provider=req.provider.value)
