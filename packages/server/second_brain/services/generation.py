"""
Generation proxy: forwards prompts to OpenAI and Gemini and reshapes replies.

Nothing is generated locally: the caller's stored provider key (or one sent
with the request) is passed through, and upstream failures are surfaced with
the upstream status and body.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
import structlog
from fastapi import Request

from second_brain.core.config import Settings
from second_brain.core.errors import UpstreamError, ValidationError
from second_brain_shared.schemas.agent import ImageInput
from second_brain_shared.schemas.common import Provider

log = structlog.get_logger()

DEFAULT_IMAGE_MIME = "image/png"


def _error_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text or None


class GenerationClient:
    """Thin async client for the two generation providers."""

    def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None):
        self._settings = settings
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.generation_timeout_seconds),
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _post(self, url: str, provider: str, **kwargs) -> dict:
        try:
            resp = await self._client.post(url, **kwargs)
        except httpx.TransportError as exc:
            log.error("generation.unreachable", provider=provider, error=str(exc))
            raise UpstreamError(f"{provider} is unreachable")

        if resp.status_code >= 400:
            log.error("generation.upstream_error", provider=provider, status=resp.status_code)
            raise UpstreamError(
                f"{provider} returned an error",
                status_code=resp.status_code,
                upstream=_error_body(resp),
            )
        try:
            data = resp.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            log.error("generation.malformed_reply", provider=provider, status=resp.status_code)
            raise UpstreamError(f"{provider} returned a malformed response")
        return data

    # --- Text ---

    async def chat(self, provider: Provider, prompt: str, api_key: str, mode: str = "text") -> str:
        if mode != "text":
            raise ValidationError("Unsupported provider/mode")
        if provider == Provider.OPENAI:
            return await self._openai_text(prompt, api_key)
        if provider == Provider.GEMINI:
            return await self._gemini_text(prompt, api_key)
        raise ValidationError("Unsupported provider/mode")

    async def _openai_text(self, prompt: str, api_key: str) -> str:
        s = self._settings
        data = await self._post(
            f"{s.openai_base_url}/chat/completions",
            "openai",
            headers={"Authorization": f"Bearer {api_key}"},
            json={
                "model": s.openai_model,
                "messages": [{"role": "user", "content": prompt}],
                "max_tokens": s.generation_max_tokens,
            },
        )
        message = _first_object(data.get("choices")).get("message")
        if not isinstance(message, dict):
            return ""
        return _text(message.get("content"))

    async def _gemini_text(self, prompt: str, api_key: str) -> str:
        s = self._settings
        data = await self._post(
            f"{s.gemini_base_url}/models/{s.gemini_text_model}:generateContent",
            "gemini",
            params={"key": api_key},
            json={
                "contents": [{"parts": [{"text": prompt}]}],
                "generationConfig": {"maxOutputTokens": s.generation_max_tokens},
            },
        )
        parts = _first_candidate_parts(data)
        return _text(parts[0].get("text")) if parts else ""

    # --- Image ---

    async def generate_image(
        self, prompt: str, images: list[ImageInput], api_key: str
    ) -> dict[str, Optional[str]]:
        """Return {"image": data URI or None, "text": text or None}."""
        s = self._settings
        parts: list[dict] = [{"text": prompt}]
        for img in images:
            parts.append(
                {"inline_data": {"mime_type": img.mime_type or DEFAULT_IMAGE_MIME, "data": img.data}}
            )

        data = await self._post(
            f"{s.gemini_base_url}/models/{s.gemini_image_model}:generateContent",
            "gemini",
            headers={"x-goog-api-key": api_key},
            json={"contents": [{"parts": parts}]},
        )
        return extract_image_result(data)


def resolve_api_key(stored: Optional[str], supplied: Optional[str], provider: Provider) -> str:
    """Prefer the user's stored key; fall back to one sent with the request."""
    key = stored or supplied
    if not key:
        raise ValidationError(f"No API key configured for {provider.value}")
    return key


def get_generation_client(request: Request) -> GenerationClient:
    return request.app.state.generation


def _first_object(value: Any) -> dict:
    """First element of a JSON array when it is an object, else an empty dict."""
    if isinstance(value, list) and value and isinstance(value[0], dict):
        return value[0]
    return {}


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _first_candidate_parts(data: dict) -> list[dict]:
    content = _first_object(data.get("candidates")).get("content")
    if not isinstance(content, dict):
        return []
    parts = content.get("parts")
    if not isinstance(parts, list):
        return []
    return [p for p in parts if isinstance(p, dict)]


def extract_image_result(data: dict) -> dict[str, Optional[str]]:
    """Pick the first inline image (as a data URI) and any text that precedes it.

    Gemini's REST API uses `inline_data`/`mime_type`; some responses use the
    camelCase spelling, so both are accepted.
    """
    image: Optional[str] = None
    text: Optional[str] = None
    for part in _first_candidate_parts(data):
        inline = part.get("inlineData") or part.get("inline_data")
        if isinstance(inline, dict) and inline.get("data"):
            mime = inline.get("mimeType") or inline.get("mime_type") or DEFAULT_IMAGE_MIME
            image = f"data:{mime};base64,{inline['data']}"
            break
        if isinstance(part.get("text"), str) and part["text"]:
            text = f"{text}\n{part['text']}" if text else part["text"]

    if image is None and text is None:
        raise UpstreamError("No image returned from Gemini")
    return {"image": image, "text": text}
