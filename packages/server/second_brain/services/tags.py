"""
Tag catalogue, and attaching/detaching tags on content items.

Attach and detach require the same rights as editing the item. A tag scoped
to an organization can only go on content in that same organization.
"""

from __future__ import annotations

import uuid

import sqlalchemy as sa
import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from second_brain.core import policy
from second_brain.core.errors import Conflict, Forbidden, NotFound, ValidationError
from second_brain.core.policy import Actor
from second_brain.models.tag import ContentItemTag, Tag
from second_brain.services.content import get_content_or_404, serialize_tag
from second_brain_shared.schemas.content import TagCreate

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------


async def list_tags(session: AsyncSession, actor: Actor) -> list[dict]:
    """Global tags plus the tags of every organization the actor belongs to."""
    scope = Tag.organization_id.is_(None)
    if actor.organization_ids:
        scope = sa.or_(scope, Tag.organization_id.in_(actor.organization_ids))
    result = await session.execute(select(Tag).where(scope).order_by(Tag.name))
    return [serialize_tag(t) for t in result.scalars().all()]


async def create_tag(session: AsyncSession, actor: Actor, req: TagCreate) -> dict:
    if req.organization_id and not actor.is_member_of(req.organization_id):
        raise Forbidden("You are not a member of the specified organization")

    name = req.name.strip()
    if not name:
        raise ValidationError("Tag name is required")

    if req.organization_id is None:
        same_scope = Tag.organization_id.is_(None)
    else:
        same_scope = Tag.organization_id == req.organization_id
    existing = await session.execute(
        select(Tag).where(sa.func.lower(Tag.name) == name.lower(), same_scope)
    )
    if existing.scalars().first():
        raise Conflict("A tag with this name already exists")

    tag = Tag(name=name, organization_id=req.organization_id)
    session.add(tag)
    await session.flush()

    log.info(
        "tag.created",
        tag_id=str(tag.id),
        organization_id=str(tag.organization_id) if tag.organization_id else None,
        by=str(actor.user_id),
    )
    return serialize_tag(tag)


# ---------------------------------------------------------------------------
# Attach / detach
# ---------------------------------------------------------------------------


async def attach_tag(
    session: AsyncSession,
    actor: Actor,
    content_id: uuid.UUID,
    tag_id: uuid.UUID,
) -> dict:
    """Attach a tag to a content item; a second attach of the same pair is a Conflict."""
    item = await get_content_or_404(session, content_id)
    if not policy.can_modify_tags(actor, item):
        raise Forbidden("You do not have permission to modify tags on this content")

    tag = await session.get(Tag, tag_id)
    if not tag:
        raise NotFound("Tag not found")

    if not policy.tag_in_scope(tag, item):
        raise ValidationError("Tag belongs to a different organization")

    existing = await session.get(ContentItemTag, (content_id, tag_id))
    if existing:
        raise Conflict("Tag already attached")

    link = ContentItemTag(content_item_id=content_id, tag_id=tag_id)
    session.add(link)
    try:
        await session.flush()
    except IntegrityError:
        # Lost a race with a concurrent attach of the same pair
        await session.rollback()
        raise Conflict("Tag already attached")

    log.info("tag.attached", content_id=str(content_id), tag_id=str(tag_id), by=str(actor.user_id))
    return {
        "content_item_id": link.content_item_id,
        "tag_id": link.tag_id,
        "created_at": link.created_at,
        "tag": serialize_tag(tag),
    }


async def detach_tag(
    session: AsyncSession,
    actor: Actor,
    content_id: uuid.UUID,
    tag_id: uuid.UUID,
) -> None:
    item = await get_content_or_404(session, content_id)
    if not policy.can_modify_tags(actor, item):
        raise Forbidden("You do not have permission to modify tags on this content")

    link = await session.get(ContentItemTag, (content_id, tag_id))
    if not link:
        raise NotFound("Attachment not found")

    await session.delete(link)
    await session.flush()
    log.info("tag.detached", content_id=str(content_id), tag_id=str(tag_id), by=str(actor.user_id))
