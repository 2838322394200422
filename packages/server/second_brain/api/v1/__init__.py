"""
API v1 Router

Content, tags, organizations, the current user and the generation proxy.
"""

from fastapi import APIRouter
from . import agent, content, organizations, tags, users

router = APIRouter()

router.include_router(content.router, prefix="/content", tags=["Content"])
router.include_router(tags.router, prefix="/tags", tags=["Tags"])
router.include_router(organizations.router, prefix="/orgs", tags=["Organizations"])
router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(agent.router, prefix="/agent", tags=["Agent"])


@router.get("/", tags=["API"])
async def api_root():
    """API root — returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/content",
            "/content/{id}/tags",
            "/tags",
            "/orgs",
            "/users/me",
            "/agent/chat",
            "/agent/image",
        ],
    }
