"""Schemas for the text/image generation proxy."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from .common import Provider


class ChatRequest(BaseModel):
    prompt: str = Field(min_length=1)
    provider: Provider
    mode: str = "text"
    api_key: Optional[str] = None  # used only when no key is stored for the provider


class ChatResponse(BaseModel):
    text: str


class ImageInput(BaseModel):
    data: str  # base64 without the data:image/...;base64, prefix
    mime_type: str = "image/png"


class ImageRequest(BaseModel):
    prompt: str = Field(min_length=1)
    images: List[ImageInput] = Field(default_factory=list)
    api_key: Optional[str] = None


class ImageResponse(BaseModel):
    image: Optional[str] = None  # data URI
    text: Optional[str] = None
