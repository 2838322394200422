"""Content-related Pydantic schemas shared between the server and API clients."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from .common import ContentType, Pagination, Visibility

DEFAULT_PER_PAGE = 20
MIN_PER_PAGE = 5
MAX_PER_PAGE = 100
# Keeps (page - 1) * per_page inside a 32-bit signed offset
MAX_PAGE = (2**31 - 1) // MAX_PER_PAGE


def parse_tag_ids(raw: Any) -> list[str]:
    """Normalize a tag id field from a form or JSON body.

    Accepts a list, a JSON-encoded list, a comma-separated string or a single id.
    """
    if raw is None or raw == "":
        return []
    if isinstance(raw, (list, tuple)):
        return [str(t).strip() for t in raw if str(t).strip()]
    text = str(raw).strip()
    try:
        parsed = json.loads(text)
    except ValueError:
        parsed = None
    if isinstance(parsed, list):
        return [str(t).strip() for t in parsed if str(t).strip()]
    if "," in text:
        return [part.strip() for part in text.split(",") if part.strip()]
    return [text]


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

class TagCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    organization_id: Optional[UUID] = None


class TagRead(BaseModel):
    id: UUID
    name: str
    organization_id: Optional[UUID] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class TagListResponse(BaseModel):
    data: List[TagRead]


class TagAttachRequest(BaseModel):
    """Request body for POST /content/{id}/tags."""
    tag_id: UUID


class ContentTagRead(BaseModel):
    content_item_id: UUID
    tag_id: UUID
    created_at: datetime
    tag: TagRead


# ---------------------------------------------------------------------------
# Attachments
# ---------------------------------------------------------------------------

class AttachmentRead(BaseModel):
    id: UUID
    url: str
    filename: str
    mime_type: str
    size: int
    uploaded_by_id: UUID
    created_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Content CRUD
# ---------------------------------------------------------------------------

class ContentCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    type: ContentType
    excerpt: Optional[str] = None
    content: Optional[str] = None
    url: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    visibility: Visibility = Visibility.PRIVATE
    pinned: bool = False
    archived: bool = False
    published: bool = False
    published_at: Optional[datetime] = None
    organization_id: Optional[UUID] = None
    tag_ids: List[UUID] = Field(default_factory=list)


class ContentUpdate(BaseModel):
    """Partial update; only fields present in the request body are applied."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    type: Optional[ContentType] = None
    excerpt: Optional[str] = None
    content: Optional[str] = None
    url: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    visibility: Optional[Visibility] = None
    pinned: Optional[bool] = None
    archived: Optional[bool] = None
    published: Optional[bool] = None
    published_at: Optional[datetime] = None
    organization_id: Optional[UUID] = None


class OwnerSummary(BaseModel):
    id: UUID
    name: Optional[str] = None
    avatar_url: Optional[str] = None


class OrganizationSummary(BaseModel):
    id: UUID
    name: str
    slug: str


class ContentRead(BaseModel):
    id: UUID
    title: str
    type: ContentType
    excerpt: Optional[str] = None
    content: Optional[str] = None
    url: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    visibility: Visibility
    pinned: bool
    archived: bool
    published: bool
    published_at: Optional[datetime] = None
    owner_id: UUID
    organization_id: Optional[UUID] = None
    owner: Optional[OwnerSummary] = None
    organization: Optional[OrganizationSummary] = None
    tags: List[TagRead] = Field(default_factory=list)
    attachments: List[AttachmentRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ContentListResponse(BaseModel):
    data: List[ContentRead]
    meta: Pagination


# ---------------------------------------------------------------------------
# Listing query
# ---------------------------------------------------------------------------

class ContentQuery(BaseModel):
    """Listing filters. Out-of-range paging values are clamped, not rejected."""

    page: int = 1
    per_page: int = DEFAULT_PER_PAGE
    q: Optional[str] = None
    tag: Optional[str] = None
    type: Optional[ContentType] = None
    owner_id: Optional[UUID] = None
    organization_id: Optional[UUID] = None
    visibility: Optional[Visibility] = None

    @field_validator("page")
    @classmethod
    def _clamp_page(cls, v: int) -> int:
        return min(MAX_PAGE, max(1, v))

    @field_validator("per_page")
    @classmethod
    def _clamp_per_page(cls, v: int) -> int:
        return min(MAX_PER_PAGE, max(MIN_PER_PAGE, v))

    @field_validator("q", "tag")
    @classmethod
    def _blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page
