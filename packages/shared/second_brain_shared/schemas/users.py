"""Account and profile schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from .common import MembershipRole, Provider


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class SignupRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    password: str = Field(min_length=8, max_length=256)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class VerifyEmailRequest(BaseModel):
    email: EmailStr


class AvatarUpdateRequest(BaseModel):
    avatar_url: str = Field(min_length=1)


class ProfileUpdateRequest(BaseModel):
    """Update the caller's display name and/or avatar image."""
    name: Optional[str] = Field(default=None, max_length=200)
    image: Optional[str] = None


class ApiKeyStoreRequest(BaseModel):
    provider: Provider
    api_key: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class AuthResponse(BaseModel):
    user_id: str
    email: str
    message: str
    access_token: Optional[str] = None


class MembershipOrg(BaseModel):
    id: UUID
    name: str
    slug: str


class MembershipRead(BaseModel):
    organization_id: UUID
    role: MembershipRole
    organization: MembershipOrg


class UserResponse(BaseModel):
    id: UUID
    email: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    email_verified: Optional[datetime] = None
    has_openai_key: bool = False
    has_gemini_key: bool = False
    memberships: List[MembershipRead] = Field(default_factory=list)
    created_at: datetime


class ApiKeyStatusResponse(BaseModel):
    """Which provider keys the caller has stored. Keys themselves are never returned."""
    openai: bool
    gemini: bool
