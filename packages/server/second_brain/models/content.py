"""Content item model."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import JSONType, TimestampMixin, UUIDMixin


class ContentItem(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "content_items"
    __table_args__ = (
        sa.Index("ix_content_items_listing", "archived", "pinned", "updated_at"),
    )

    title: str = Field(nullable=False)
    excerpt: Optional[str] = None
    content: Optional[str] = Field(default=None, sa_type=sa.Text)
    url: Optional[str] = None
    type: str = Field(nullable=False)  # NOTE | TWEET | VIDEO | DOCUMENT | LINK | IMAGE
    visibility: str = Field(nullable=False, default="PRIVATE", index=True)  # PRIVATE | ORGANIZATION | PUBLIC
    owner_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    organization_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="organizations.id", index=True
    )
    pinned: bool = Field(default=False, nullable=False)
    archived: bool = Field(default=False, nullable=False)
    published: bool = Field(default=False, nullable=False)
    published_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    # "metadata" is reserved on declarative classes, so the attribute is `meta`
    meta: dict = Field(
        default_factory=dict,
        sa_column=sa.Column("metadata", JSONType, nullable=False),
    )
