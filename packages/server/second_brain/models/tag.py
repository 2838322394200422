"""Tag and content-tag join models."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class Tag(UUIDMixin, SQLModel, table=True):
    __tablename__ = "tags"

    name: str = Field(nullable=False, index=True)
    # NULL = global tag, usable on any content item
    organization_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="organizations.id", index=True
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )


class ContentItemTag(SQLModel, table=True):
    __tablename__ = "content_item_tags"

    content_item_id: uuid.UUID = Field(foreign_key="content_items.id", primary_key=True)
    tag_id: uuid.UUID = Field(foreign_key="tags.id", primary_key=True, index=True)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
