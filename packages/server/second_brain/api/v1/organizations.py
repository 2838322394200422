"""
Organization API endpoints.

GET    /api/v1/orgs                 — List orgs for the authenticated user
POST   /api/v1/orgs                 — Create an org (creator becomes OWNER)
POST   /api/v1/orgs/{slug}/members  — Add an existing user (OWNER/ADMIN only)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from second_brain.core.auth import require_actor
from second_brain.core.database import get_session
from second_brain.core.policy import Actor
from second_brain.services import organizations as org_service
from second_brain_shared.schemas.organizations import (
    MemberAddRequest,
    MemberResponse,
    OrgCreateRequest,
    OrgListResponse,
    OrgResponse,
)

router = APIRouter()


@router.get("", response_model=OrgListResponse)
async def list_orgs(
    actor: Actor = Depends(require_actor),
    session: AsyncSession = Depends(get_session),
):
    """List orgs the authenticated user belongs to."""
    items = await org_service.list_user_orgs(actor.user_id, session)
    return OrgListResponse(data=items)


@router.post("", response_model=OrgResponse, status_code=201)
async def create_org(
    body: OrgCreateRequest,
    actor: Actor = Depends(require_actor),
    session: AsyncSession = Depends(get_session),
):
    org = await org_service.create_org(body, actor.user_id, session)
    return OrgResponse.model_validate(org)


@router.post("/{slug}/members", response_model=MemberResponse, status_code=201)
async def add_member(
    slug: str,
    body: MemberAddRequest,
    actor: Actor = Depends(require_actor),
    session: AsyncSession = Depends(get_session),
):
    return await org_service.add_member(slug, body, actor, session)
