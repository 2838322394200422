from enum import Enum
from typing import Optional
from pydantic import BaseModel

class ContentType(str, Enum):
    NOTE = "NOTE"
    TWEET = "TWEET"
    VIDEO = "VIDEO"
    DOCUMENT = "DOCUMENT"
    LINK = "LINK"
    IMAGE = "IMAGE"

class Visibility(str, Enum):
    PRIVATE = "PRIVATE"
    ORGANIZATION = "ORGANIZATION"
    PUBLIC = "PUBLIC"

class MembershipRole(str, Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"

# Roles allowed to modify content they do not own
MANAGER_ROLES: frozenset["MembershipRole"] = frozenset(
    {MembershipRole.OWNER, MembershipRole.ADMIN}
)

class Provider(str, Enum):
    OPENAI = "openai"
    GEMINI = "gemini"

class Pagination(BaseModel):
    total: int
    page: int
    per_page: int
    total_pages: int

class ErrorBody(BaseModel):
    code: str
    message: str
    status: int

class ErrorResponse(BaseModel):
    error: ErrorBody

class MessageResponse(BaseModel):
    message: str
    success: Optional[bool] = None
