"""
Organization creation and membership management.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from second_brain.core.errors import Conflict, Forbidden, NotFound
from second_brain.core.policy import Actor
from second_brain.models.membership import Membership
from second_brain.models.organization import Organization
from second_brain.models.user import User
from second_brain_shared.schemas.common import MembershipRole
from second_brain_shared.schemas.organizations import MemberAddRequest, OrgCreateRequest

log = structlog.get_logger()


async def list_user_orgs(
    user_id: uuid.UUID, session: AsyncSession
) -> list[dict]:
    """List all orgs a user belongs to, with their role."""
    result = await session.execute(
        select(Organization, Membership.role)
        .join(Membership, Membership.organization_id == Organization.id)
        .where(Membership.user_id == user_id)
        .order_by(Organization.name)
    )
    return [
        {
            "id": org.id,
            "name": org.name,
            "slug": org.slug,
            "role": role,
        }
        for org, role in result.all()
    ]


async def get_org(org_slug: str, session: AsyncSession) -> Organization:
    """Get an org by slug; raises NotFound if it does not exist."""
    result = await session.execute(
        select(Organization).where(Organization.slug == org_slug)
    )
    org = result.scalar_one_or_none()
    if not org:
        raise NotFound("Organization not found")
    return org


async def create_org(
    req: OrgCreateRequest,
    creator_id: uuid.UUID,
    session: AsyncSession,
) -> Organization:
    """Create an org and make the creator its OWNER."""
    existing = await session.execute(
        select(Organization).where(Organization.slug == req.slug)
    )
    if existing.scalar_one_or_none():
        raise Conflict("Org slug already taken")

    org = Organization(name=req.name, slug=req.slug)
    session.add(org)
    await session.flush()

    membership = Membership(
        user_id=creator_id,
        organization_id=org.id,
        role=MembershipRole.OWNER.value,
    )
    session.add(membership)
    await session.flush()

    log.info("org.created", org_id=str(org.id), slug=req.slug, creator=str(creator_id))
    return org


async def add_member(
    org_slug: str,
    req: MemberAddRequest,
    actor: Actor,
    session: AsyncSession,
) -> dict:
    """Add an existing user to an org. Only OWNER/ADMIN members may do this."""
    org = await get_org(org_slug, session)
    if not actor.manages(org.id):
        raise Forbidden("Only organization owners and admins can add members")

    result = await session.execute(select(User).where(User.email == req.email))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFound("User not found")

    existing = await session.get(Membership, (user.id, org.id))
    if existing:
        raise Conflict("User is already a member of this org")

    membership = Membership(
        user_id=user.id,
        organization_id=org.id,
        role=req.role.value,
    )
    session.add(membership)
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise Conflict("User is already a member of this org")

    log.info(
        "org.member_added",
        org_id=str(org.id),
        user_id=str(user.id),
        role=req.role.value,
        by=str(actor.user_id),
    )
    return {
        "user_id": user.id,
        "organization_id": org.id,
        "email": user.email,
        "role": membership.role,
        "created_at": membership.created_at,
    }
