"""
Content item CRUD and the visibility-gated listing.

Every decision about who may see or change an item is delegated to
`second_brain.core.policy`; this module loads the snapshots, applies the
decision and turns a deny into the matching error.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

import sqlalchemy as sa
import structlog
from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from second_brain.core import policy
from second_brain.core.errors import (
    Forbidden,
    NotFound,
    Unauthenticated,
    ValidationError,
)
from second_brain.core.policy import Actor
from second_brain.models.attachment import Attachment
from second_brain.models.content import ContentItem
from second_brain.models.organization import Organization
from second_brain.models.tag import ContentItemTag, Tag
from second_brain.models.user import User
from second_brain.services.storage import LocalFileStorage
from second_brain_shared.schemas.common import Visibility
from second_brain_shared.schemas.content import ContentCreate, ContentQuery, ContentUpdate

log = structlog.get_logger()

# Fields that may be cleared with an explicit null in an update
NULLABLE_FIELDS = {"excerpt", "content", "url", "published_at", "organization_id"}


@dataclass(frozen=True)
class Upload:
    """An uploaded file, already read into memory by the route."""

    filename: str
    content_type: str
    data: bytes


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def get_content_or_404(session: AsyncSession, content_id: uuid.UUID) -> ContentItem:
    item = await session.get(ContentItem, content_id)
    if not item:
        raise NotFound("Content not found")
    return item


def ensure_readable(actor: Optional[Actor], item: ContentItem) -> None:
    if policy.can_read(actor, item):
        return
    if actor is None:
        raise Unauthenticated("Authentication required")
    raise Forbidden("You do not have access to this content")


def _check_org_visibility(visibility: str, organization_id: Optional[uuid.UUID]) -> None:
    if visibility == Visibility.ORGANIZATION.value and organization_id is None:
        raise ValidationError("Organization visibility requires an organization")


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _contains(column, text: str):
    """Case-insensitive substring match."""
    return column.ilike(f"%{_escape_like(text)}%", escape="\\")


async def _resolve_tags(
    session: AsyncSession, item: ContentItem, tag_ids: list[uuid.UUID]
) -> list[Tag]:
    """Load tags for attachment at creation time, enforcing organization scope."""
    tags: list[Tag] = []
    for tag_id in dict.fromkeys(tag_ids):
        tag = await session.get(Tag, tag_id)
        if not tag:
            raise NotFound(f"Tag not found: {tag_id}")
        if not policy.tag_in_scope(tag, item):
            raise ValidationError("Tag belongs to a different organization")
        tags.append(tag)
    return tags


async def _check_tags_fit_organization(
    session: AsyncSession, content_id: uuid.UUID, organization_id: Optional[uuid.UUID]
) -> None:
    """Attached org-scoped tags must belong to the organization the item ends up in."""
    stmt = (
        select(Tag.name)
        .join(ContentItemTag, ContentItemTag.tag_id == Tag.id)
        .where(ContentItemTag.content_item_id == content_id)
        .where(Tag.organization_id.is_not(None))
    )
    if organization_id is not None:
        stmt = stmt.where(Tag.organization_id != organization_id)
    names = list((await session.execute(stmt)).scalars().all())
    if names:
        raise ValidationError(
            "Remove tags scoped to the current organization before moving: "
            + ", ".join(sorted(names))
        )


async def remove_stored_files(storage: LocalFileStorage, urls: list[str]) -> None:
    """Delete the files behind attachment URLs served from local storage."""
    prefix = f"{storage.url_prefix}/"
    for url in urls:
        if url.startswith(prefix):
            await storage.delete(url[len(prefix):])


def serialize_tag(tag: Tag) -> dict:
    return {
        "id": tag.id,
        "name": tag.name,
        "organization_id": tag.organization_id,
        "created_at": tag.created_at,
    }


def _serialize_attachment(att: Attachment) -> dict:
    return {
        "id": att.id,
        "url": att.url,
        "filename": att.filename,
        "mime_type": att.mime_type,
        "size": att.size,
        "uploaded_by_id": att.uploaded_by_id,
        "created_at": att.created_at,
    }


async def enrich_items(session: AsyncSession, items: list[ContentItem]) -> list[dict]:
    """Expand tags, attachments, owner and organization for a batch of items."""
    if not items:
        return []

    item_ids = [i.id for i in items]

    tag_rows = await session.execute(
        select(ContentItemTag.content_item_id, Tag)
        .join(Tag, Tag.id == ContentItemTag.tag_id)
        .where(ContentItemTag.content_item_id.in_(item_ids))
        .order_by(Tag.name)
    )
    tags_by_item: dict[uuid.UUID, list[dict]] = {}
    for content_item_id, tag in tag_rows.all():
        tags_by_item.setdefault(content_item_id, []).append(serialize_tag(tag))

    att_rows = await session.execute(
        select(Attachment)
        .where(Attachment.content_item_id.in_(item_ids))
        .order_by(Attachment.created_at)
    )
    atts_by_item: dict[uuid.UUID, list[dict]] = {}
    for att in att_rows.scalars().all():
        atts_by_item.setdefault(att.content_item_id, []).append(_serialize_attachment(att))

    owner_ids = {i.owner_id for i in items}
    owner_rows = await session.execute(select(User).where(User.id.in_(owner_ids)))
    owners = {
        u.id: {"id": u.id, "name": u.name, "avatar_url": u.avatar_url}
        for u in owner_rows.scalars().all()
    }

    org_ids = {i.organization_id for i in items if i.organization_id}
    orgs: dict[uuid.UUID, dict] = {}
    if org_ids:
        org_rows = await session.execute(
            select(Organization).where(Organization.id.in_(org_ids))
        )
        orgs = {
            o.id: {"id": o.id, "name": o.name, "slug": o.slug}
            for o in org_rows.scalars().all()
        }

    return [
        {
            "id": i.id,
            "title": i.title,
            "type": i.type,
            "excerpt": i.excerpt,
            "content": i.content,
            "url": i.url,
            "metadata": i.meta or {},
            "visibility": i.visibility,
            "pinned": i.pinned,
            "archived": i.archived,
            "published": i.published,
            "published_at": i.published_at,
            "owner_id": i.owner_id,
            "organization_id": i.organization_id,
            "owner": owners.get(i.owner_id),
            "organization": orgs.get(i.organization_id) if i.organization_id else None,
            "tags": tags_by_item.get(i.id, []),
            "attachments": atts_by_item.get(i.id, []),
            "created_at": i.created_at,
            "updated_at": i.updated_at,
        }
        for i in items
    ]


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


def listing_conditions(actor: Optional[Actor], query: ContentQuery) -> list:
    """Visibility gate plus the caller's filters, all AND-ed together."""
    conditions = [
        ContentItem.archived.is_(False),
        policy.visibility_clause(actor),
    ]

    if query.type:
        conditions.append(ContentItem.type == query.type.value)
    if query.owner_id:
        conditions.append(ContentItem.owner_id == query.owner_id)
    if query.organization_id:
        conditions.append(ContentItem.organization_id == query.organization_id)
    if query.visibility:
        conditions.append(ContentItem.visibility == query.visibility.value)

    if query.q:
        conditions.append(
            sa.or_(
                _contains(ContentItem.title, query.q),
                _contains(ContentItem.excerpt, query.q),
                _contains(ContentItem.content, query.q),
            )
        )

    if query.tag:
        tag_match = _contains(Tag.name, query.tag)
        try:
            tag_match = sa.or_(Tag.id == uuid.UUID(query.tag), tag_match)
        except ValueError:
            pass  # not an id, match by name only
        tagged = (
            select(ContentItemTag.content_item_id)
            .join(Tag, Tag.id == ContentItemTag.tag_id)
            .where(tag_match)
        )
        conditions.append(ContentItem.id.in_(tagged))

    return conditions


async def list_visible(
    session: AsyncSession, actor: Optional[Actor], query: ContentQuery
) -> dict:
    """One page of the items the actor may read, pinned first, newest first."""
    conditions = listing_conditions(actor, query)

    total = (
        await session.execute(
            select(func.count()).select_from(ContentItem).where(*conditions)
        )
    ).scalar_one()

    stmt = (
        select(ContentItem)
        .where(*conditions)
        .order_by(ContentItem.pinned.desc(), ContentItem.updated_at.desc())
        .offset(query.offset)
        .limit(query.per_page)
    )
    items = list((await session.execute(stmt)).scalars().all())

    return {
        "data": await enrich_items(session, items),
        "meta": {
            "total": total,
            "page": query.page,
            "per_page": query.per_page,
            "total_pages": (total + query.per_page - 1) // query.per_page,
        },
    }


# ---------------------------------------------------------------------------
# Single item
# ---------------------------------------------------------------------------


async def get_content(
    session: AsyncSession, actor: Optional[Actor], content_id: uuid.UUID
) -> dict:
    item = await get_content_or_404(session, content_id)
    ensure_readable(actor, item)
    enriched = await enrich_items(session, [item])
    return enriched[0]


async def create_content(
    session: AsyncSession,
    actor: Actor,
    req: ContentCreate,
    *,
    upload: Optional[Upload] = None,
    storage: Optional[LocalFileStorage] = None,
) -> dict:
    """Create an item owned by the actor, with optional tags and one attachment."""
    if req.organization_id and not actor.is_member_of(req.organization_id):
        raise Forbidden("You are not a member of the specified organization")
    _check_org_visibility(req.visibility.value, req.organization_id)

    published_at = req.published_at
    if req.published and published_at is None:
        published_at = datetime.now(timezone.utc)

    item = ContentItem(
        title=req.title,
        excerpt=req.excerpt,
        content=req.content,
        url=req.url,
        type=req.type.value,
        visibility=req.visibility.value,
        owner_id=actor.user_id,
        organization_id=req.organization_id,
        pinned=req.pinned,
        archived=req.archived,
        published=req.published,
        published_at=published_at,
        meta=req.metadata,
    )
    tags = await _resolve_tags(session, item, req.tag_ids)

    session.add(item)
    await session.flush()

    for tag in tags:
        session.add(ContentItemTag(content_item_id=item.id, tag_id=tag.id))

    if upload is not None:
        if storage is None:
            raise ValidationError("File uploads are not configured")
        stored = await storage.put(upload.data, upload.filename)
        session.add(
            Attachment(
                content_item_id=item.id,
                url=stored.url,
                filename=upload.filename,
                mime_type=upload.content_type or "application/octet-stream",
                size=stored.size,
                uploaded_by_id=actor.user_id,
            )
        )
        try:
            await session.flush()
        except Exception:
            await storage.delete(stored.key)
            raise
    else:
        await session.flush()

    log.info(
        "content.created",
        content_id=str(item.id),
        owner_id=str(actor.user_id),
        type=item.type,
        visibility=item.visibility,
        tags=len(tags),
        attachment=upload is not None,
    )
    enriched = await enrich_items(session, [item])
    return enriched[0]


async def update_content(
    session: AsyncSession,
    actor: Actor,
    content_id: uuid.UUID,
    req: ContentUpdate,
) -> dict:
    item = await get_content_or_404(session, content_id)

    if not policy.can_write(actor, item):
        raise Forbidden("You do not have permission to modify this content")

    changes: dict[str, Any] = req.model_dump(exclude_unset=True)
    for key, value in changes.items():
        if value is None and key not in NULLABLE_FIELDS:
            raise ValidationError(f"{key} cannot be null")

    if "organization_id" in changes and not policy.can_move_to_organization(
        actor, item, changes["organization_id"]
    ):
        raise Forbidden("You are not a member of the new organization")

    visibility = changes.get("visibility", item.visibility)
    if isinstance(visibility, Enum):
        visibility = visibility.value
    organization_id = changes.get("organization_id", item.organization_id)
    _check_org_visibility(visibility, organization_id)
    if organization_id != item.organization_id:
        await _check_tags_fit_organization(session, item.id, organization_id)

    for key, value in changes.items():
        if isinstance(value, Enum):
            value = value.value
        setattr(item, "meta" if key == "metadata" else key, value)

    if changes.get("published") and item.published_at is None:
        item.published_at = datetime.now(timezone.utc)

    item.updated_at = datetime.now(timezone.utc)
    session.add(item)
    await session.flush()

    log.info(
        "content.updated",
        content_id=str(item.id),
        actor_id=str(actor.user_id),
        fields=sorted(changes),
    )
    enriched = await enrich_items(session, [item])
    return enriched[0]


async def delete_content(
    session: AsyncSession,
    actor: Actor,
    content_id: uuid.UUID,
) -> list[str]:
    """Hard-delete an item together with its tag joins and attachment rows.

    Returns the attachment URLs; the caller removes their files once the
    transaction has committed.
    """
    item = await get_content_or_404(session, content_id)

    if not policy.can_delete(actor, item):
        raise Forbidden("You do not have permission to delete this content")

    att_rows = await session.execute(
        select(Attachment).where(Attachment.content_item_id == item.id)
    )
    attachments = list(att_rows.scalars().all())

    await session.execute(delete(ContentItemTag).where(ContentItemTag.content_item_id == item.id))
    await session.execute(delete(Attachment).where(Attachment.content_item_id == item.id))
    await session.delete(item)
    await session.flush()

    log.info(
        "content.deleted",
        content_id=str(content_id),
        actor_id=str(actor.user_id),
        attachments=len(attachments),
    )
    return [att.url for att in attachments]
