"""
Content endpoints: visibility-gated listing, CRUD, file upload, tagging.

Reads accept anonymous callers (PUBLIC content only); every mutation needs an
authenticated actor and is checked against the policy in the service layer.
"""

from __future__ import annotations

import json
import uuid
from typing import Optional

import pydantic
from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from second_brain.core.auth import get_optional_actor, require_actor, require_verified_actor
from second_brain.core.database import get_session
from second_brain.core.errors import ValidationError
from second_brain.core.policy import Actor
from second_brain.services import content as content_service
from second_brain.services import tags as tag_service
from second_brain.services.storage import LocalFileStorage, get_storage
from second_brain_shared.schemas.common import ContentType, MessageResponse, Visibility
from second_brain_shared.schemas.content import (
    DEFAULT_PER_PAGE,
    ContentCreate,
    ContentListResponse,
    ContentQuery,
    ContentRead,
    ContentTagRead,
    ContentUpdate,
    TagAttachRequest,
    parse_tag_ids,
)

router = APIRouter()


def content_query(
    page: int = Query(1),
    per_page: int = Query(DEFAULT_PER_PAGE),
    q: Optional[str] = None,
    tag: Optional[str] = None,
    type: Optional[ContentType] = None,
    owner_id: Optional[uuid.UUID] = None,
    organization_id: Optional[uuid.UUID] = None,
    visibility: Optional[Visibility] = None,
) -> ContentQuery:
    return ContentQuery(
        page=page,
        per_page=per_page,
        q=q,
        tag=tag,
        type=type,
        owner_id=owner_id,
        organization_id=organization_id,
        visibility=visibility,
    )


# ---------------------------------------------------------------------------
# Listing & creation
# ---------------------------------------------------------------------------


@router.get("", response_model=ContentListResponse)
async def list_content(
    query: ContentQuery = Depends(content_query),
    actor: Optional[Actor] = Depends(get_optional_actor),
    session: AsyncSession = Depends(get_session),
):
    """List the content the caller may see, pinned first, newest first."""
    return await content_service.list_visible(session, actor, query)


@router.post("", response_model=ContentRead, status_code=201)
async def create_content(
    body: ContentCreate,
    actor: Actor = Depends(require_verified_actor),
    session: AsyncSession = Depends(get_session),
):
    item = await content_service.create_content(session, actor, body)
    await session.commit()
    return item


@router.post("/upload", response_model=ContentRead, status_code=201)
async def upload_content(
    request: Request,
    title: str = Form(...),
    type: str = Form(...),
    excerpt: Optional[str] = Form(None),
    content: Optional[str] = Form(None),
    url: Optional[str] = Form(None),
    visibility: str = Form(Visibility.PRIVATE.value),
    organization_id: Optional[str] = Form(None),
    tag_ids: Optional[str] = Form(None),
    metadata: Optional[str] = Form(None),
    pinned: bool = Form(False),
    archived: bool = Form(False),
    published: bool = Form(False),
    published_at: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    actor: Actor = Depends(require_verified_actor),
    session: AsyncSession = Depends(get_session),
    storage: LocalFileStorage = Depends(get_storage),
):
    """Multipart variant of create, with an optional attached file."""
    try:
        meta = json.loads(metadata) if metadata else {}
    except ValueError:
        raise ValidationError("metadata must be a JSON object")
    if not isinstance(meta, dict):
        raise ValidationError("metadata must be a JSON object")

    try:
        req = ContentCreate.model_validate(
            {
                "title": title,
                "type": type,
                "excerpt": excerpt or None,
                "content": content or None,
                "url": url or None,
                "visibility": visibility,
                "organization_id": organization_id or None,
                "tag_ids": parse_tag_ids(tag_ids),
                "metadata": meta,
                "pinned": pinned,
                "archived": archived,
                "published": published,
                "published_at": published_at or None,
            }
        )
    except pydantic.ValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False, include_context=False))

    upload = None
    if file is not None and file.filename:
        limit = request.app.state.settings.max_upload_bytes
        data = await file.read(limit + 1)
        if len(data) > limit:
            raise ValidationError("Uploaded file is too large")
        upload = content_service.Upload(
            filename=file.filename,
            content_type=file.content_type or "application/octet-stream",
            data=data,
        )

    item = await content_service.create_content(
        session, actor, req, upload=upload, storage=storage
    )
    try:
        await session.commit()
    except Exception:
        await content_service.remove_stored_files(
            storage, [att["url"] for att in item["attachments"]]
        )
        raise
    return item


# ---------------------------------------------------------------------------
# Single item
# ---------------------------------------------------------------------------


@router.get("/{content_id}", response_model=ContentRead)
async def get_content(
    content_id: uuid.UUID,
    actor: Optional[Actor] = Depends(get_optional_actor),
    session: AsyncSession = Depends(get_session),
):
    return await content_service.get_content(session, actor, content_id)


@router.patch("/{content_id}", response_model=ContentRead)
@router.put("/{content_id}", response_model=ContentRead)
async def update_content(
    content_id: uuid.UUID,
    body: ContentUpdate,
    actor: Actor = Depends(require_actor),
    session: AsyncSession = Depends(get_session),
):
    """Partial update; fields missing from the body are left unchanged."""
    item = await content_service.update_content(session, actor, content_id, body)
    await session.commit()
    return item


@router.delete("/{content_id}", response_model=MessageResponse)
async def delete_content(
    content_id: uuid.UUID,
    actor: Actor = Depends(require_actor),
    session: AsyncSession = Depends(get_session),
    storage: LocalFileStorage = Depends(get_storage),
):
    urls = await content_service.delete_content(session, actor, content_id)
    await session.commit()
    await content_service.remove_stored_files(storage, urls)
    return MessageResponse(message="Content deleted", success=True)


# ---------------------------------------------------------------------------
# Tags on an item
# ---------------------------------------------------------------------------


@router.post("/{content_id}/tags", response_model=ContentTagRead, status_code=201)
async def attach_tag(
    content_id: uuid.UUID,
    body: TagAttachRequest,
    actor: Actor = Depends(require_actor),
    session: AsyncSession = Depends(get_session),
):
    link = await tag_service.attach_tag(session, actor, content_id, body.tag_id)
    await session.commit()
    return link


@router.delete("/{content_id}/tags/{tag_id}", response_model=MessageResponse)
async def detach_tag(
    content_id: uuid.UUID,
    tag_id: uuid.UUID,
    actor: Actor = Depends(require_actor),
    session: AsyncSession = Depends(get_session),
):
    await tag_service.detach_tag(session, actor, content_id, tag_id)
    await session.commit()
    return MessageResponse(message="Tag removed", success=True)
