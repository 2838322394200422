"""
Organization and membership schemas.

Organizations group users; content scoped to an organization is visible to
its members when its visibility is ORGANIZATION.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from .common import MembershipRole


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class OrgCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Organization display name")
    slug: str = Field(
        ...,
        min_length=2,
        max_length=50,
        pattern=r"^[a-z0-9][a-z0-9-]*[a-z0-9]$",
        description="URL-safe org identifier",
    )


class MemberAddRequest(BaseModel):
    email: EmailStr
    role: MembershipRole = MembershipRole.MEMBER


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class OrgResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrgListItem(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    role: MembershipRole  # the requesting user's role in this org


class OrgListResponse(BaseModel):
    data: list[OrgListItem]


class MemberResponse(BaseModel):
    user_id: uuid.UUID
    organization_id: uuid.UUID
    email: str
    role: MembershipRole
    created_at: datetime
