"""User model."""

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class User(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    email: str = Field(unique=True, index=True, nullable=False)
    name: Optional[str] = None
    password_hash: Optional[str] = Field(default=None)  # bcrypt hash for email/password login
    email_verified: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    avatar_url: Optional[str] = None
    # Provider keys are forwarded verbatim to the generation APIs, so they are not hashed
    api_key_openai: Optional[str] = None
    api_key_gemini: Optional[str] = None
