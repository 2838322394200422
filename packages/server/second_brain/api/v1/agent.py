"""
Generation proxy endpoints (text chat and image generation).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from second_brain.core.auth import require_verified_actor
from second_brain.core.database import get_session
from second_brain.core.policy import Actor
from second_brain.services import users as user_service
from second_brain.services.generation import (
    GenerationClient,
    get_generation_client,
    resolve_api_key,
)
from second_brain_shared.schemas.agent import (
    ChatRequest,
    ChatResponse,
    ImageRequest,
    ImageResponse,
)
from second_brain_shared.schemas.common import Provider

router = APIRouter()


@router.post("/chat", response_model=ChatResponse)
async def chat(
    body: ChatRequest,
    actor: Actor = Depends(require_verified_actor),
    session: AsyncSession = Depends(get_session),
    client: GenerationClient = Depends(get_generation_client),
):
    """Forward a prompt to the chosen provider and return its text."""
    user = await user_service.get_user_or_404(actor.user_id, session)
    api_key = resolve_api_key(
        user_service.stored_api_key(user, body.provider), body.api_key, body.provider
    )
    text = await client.chat(body.provider, body.prompt, api_key, mode=body.mode)
    return ChatResponse(text=text)


@router.post("/image", response_model=ImageResponse)
async def generate_image(
    body: ImageRequest,
    actor: Actor = Depends(require_verified_actor),
    session: AsyncSession = Depends(get_session),
    client: GenerationClient = Depends(get_generation_client),
):
    """Generate (or edit) an image with Gemini."""
    user = await user_service.get_user_or_404(actor.user_id, session)
    api_key = resolve_api_key(
        user_service.stored_api_key(user, Provider.GEMINI), body.api_key, Provider.GEMINI
    )
    result = await client.generate_image(body.prompt, body.images, api_key)
    return ImageResponse(**result)
