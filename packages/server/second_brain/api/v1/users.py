"""
Current-user endpoints: profile and stored provider API keys.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from second_brain.core.auth import require_actor
from second_brain.core.database import get_session
from second_brain.core.policy import Actor
from second_brain.services import users as user_service
from second_brain_shared.schemas.common import MessageResponse
from second_brain_shared.schemas.users import (
    ApiKeyStatusResponse,
    ApiKeyStoreRequest,
    ProfileUpdateRequest,
    UserResponse,
)

router = APIRouter()


@router.get("/me", response_model=UserResponse)
async def get_me(
    actor: Actor = Depends(require_actor),
    session: AsyncSession = Depends(get_session),
):
    """The caller's profile with organization memberships."""
    return await user_service.get_profile(actor.user_id, session)


@router.put("/me", response_model=UserResponse)
async def update_me(
    body: ProfileUpdateRequest,
    actor: Actor = Depends(require_actor),
    session: AsyncSession = Depends(get_session),
):
    await user_service.update_profile(actor.user_id, body, session)
    return await user_service.get_profile(actor.user_id, session)


@router.get("/me/api-keys", response_model=ApiKeyStatusResponse)
async def get_api_keys(
    actor: Actor = Depends(require_actor),
    session: AsyncSession = Depends(get_session),
):
    return await user_service.api_key_status(actor.user_id, session)


@router.post("/me/api-keys", response_model=MessageResponse)
async def store_api_key(
    body: ApiKeyStoreRequest,
    actor: Actor = Depends(require_actor),
    session: AsyncSession = Depends(get_session),
):
    await user_service.store_api_key(actor.user_id, body, session)
    return MessageResponse(message="API key saved", success=True)
