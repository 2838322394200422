"""Attachment model (immutable upload metadata)."""

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class Attachment(UUIDMixin, SQLModel, table=True):
    __tablename__ = "attachments"

    content_item_id: uuid.UUID = Field(foreign_key="content_items.id", nullable=False, index=True)
    url: str = Field(nullable=False)
    filename: str = Field(nullable=False)
    mime_type: str = Field(nullable=False, default="application/octet-stream")
    size: int = Field(nullable=False, default=0)
    uploaded_by_id: uuid.UUID = Field(foreign_key="users.id", nullable=False)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
