"""
Tag catalogue endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from second_brain.core.auth import require_actor
from second_brain.core.database import get_session
from second_brain.core.policy import Actor
from second_brain.services import tags as tag_service
from second_brain_shared.schemas.content import TagCreate, TagListResponse, TagRead

router = APIRouter()


@router.get("", response_model=TagListResponse)
async def list_tags(
    actor: Actor = Depends(require_actor),
    session: AsyncSession = Depends(get_session),
):
    """Global tags plus those of the caller's organizations."""
    return {"data": await tag_service.list_tags(session, actor)}


@router.post("", response_model=TagRead, status_code=201)
async def create_tag(
    body: TagCreate,
    actor: Actor = Depends(require_actor),
    session: AsyncSession = Depends(get_session),
):
    return await tag_service.create_tag(session, actor, body)
