"""
Tests for the generation proxy.

Upstream providers are replaced by an httpx.MockTransport that records every
request and answers with a canned response.
"""

from __future__ import annotations

import json

import httpx
import pytest

from second_brain.core.errors import UpstreamError
from second_brain.services.generation import GenerationClient, extract_image_result
from second_brain.services.users import store_api_key
from second_brain_shared.schemas.users import ApiKeyStoreRequest


class Upstream:
    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.response = httpx.Response(200, json={})
        self.error: Exception | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error:
            raise self.error
        return self.response

    @property
    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


@pytest.fixture
async def upstream(app, settings):
    up = Upstream()
    await app.state.generation.close()
    app.state.generation = GenerationClient(settings, transport=httpx.MockTransport(up))
    return up


async def store_key(app, user, provider: str, key: str) -> None:
    async with app.state.db.session() as session:
        await store_api_key(user.id, ApiKeyStoreRequest(provider=provider, api_key=key), session)


def openai_reply(text: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": text}}]})


def gemini_reply(*parts: dict) -> httpx.Response:
    return httpx.Response(200, json={"candidates": [{"content": {"parts": list(parts)}}]})


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------

class TestChat:
    @pytest.mark.asyncio
    async def test_openai_uses_stored_key(self, app, client, factory, upstream):
        user = await factory.user()
        await store_key(app, user, "openai", "sk-stored")
        upstream.response = openai_reply("  hello there \n")

        resp = await client.post(
            "/api/v1/agent/chat",
            json={"prompt": "hi", "provider": "openai", "api_key": "sk-request"},
            headers=factory.headers(user),
        )
        assert resp.status_code == 200
        assert resp.json() == {"text": "hello there"}

        req = upstream.requests[-1]
        assert str(req.url) == "https://api.openai.com/v1/chat/completions"
        assert req.headers["Authorization"] == "Bearer sk-stored"
        body = upstream.last_json
        assert body["model"] == "gpt-4o-mini"
        assert body["max_tokens"] == 256
        assert body["messages"] == [{"role": "user", "content": "hi"}]

    @pytest.mark.asyncio
    async def test_request_key_used_when_none_stored(self, client, factory, upstream):
        user = await factory.user()
        upstream.response = openai_reply("ok")
        resp = await client.post(
            "/api/v1/agent/chat",
            json={"prompt": "hi", "provider": "openai", "api_key": "sk-request"},
            headers=factory.headers(user),
        )
        assert resp.status_code == 200
        assert upstream.requests[-1].headers["Authorization"] == "Bearer sk-request"

    @pytest.mark.asyncio
    async def test_missing_key(self, client, factory, upstream):
        user = await factory.user()
        resp = await client.post(
            "/api/v1/agent/chat",
            json={"prompt": "hi", "provider": "gemini"},
            headers=factory.headers(user),
        )
        assert resp.status_code == 400
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_gemini_text(self, client, factory, upstream):
        user = await factory.user()
        upstream.response = gemini_reply({"text": "from gemini "})
        resp = await client.post(
            "/api/v1/agent/chat",
            json={"prompt": "hi", "provider": "gemini", "api_key": "g-key"},
            headers=factory.headers(user),
        )
        assert resp.json() == {"text": "from gemini"}

        req = upstream.requests[-1]
        assert req.url.path.endswith("/models/gemini-1.5-flash:generateContent")
        assert req.url.params["key"] == "g-key"
        assert upstream.last_json["generationConfig"] == {"maxOutputTokens": 256}

    @pytest.mark.asyncio
    async def test_unsupported_mode(self, client, factory, upstream):
        user = await factory.user()
        resp = await client.post(
            "/api/v1/agent/chat",
            json={"prompt": "hi", "provider": "openai", "mode": "audio", "api_key": "k"},
            headers=factory.headers(user),
        )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_upstream_error_passed_through(self, client, factory, upstream):
        user = await factory.user()
        upstream.response = httpx.Response(429, json={"error": {"message": "slow down"}})
        resp = await client.post(
            "/api/v1/agent/chat",
            json={"prompt": "hi", "provider": "openai", "api_key": "k"},
            headers=factory.headers(user),
        )
        assert resp.status_code == 429
        error = resp.json()["error"]
        assert error["code"] == "UPSTREAM_ERROR"
        assert error["upstream"] == {"error": {"message": "slow down"}}

    @pytest.mark.asyncio
    async def test_unreachable_upstream(self, client, factory, upstream):
        user = await factory.user()
        upstream.error = httpx.ConnectError("refused")
        resp = await client.post(
            "/api/v1/agent/chat",
            json={"prompt": "hi", "provider": "openai", "api_key": "k"},
            headers=factory.headers(user),
        )
        assert resp.status_code == 502

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [["x"], None, "text"])
    async def test_non_object_reply_is_upstream_error(self, client, factory, upstream, payload):
        user = await factory.user()
        upstream.response = httpx.Response(200, json=payload)
        resp = await client.post(
            "/api/v1/agent/chat",
            json={"prompt": "hi", "provider": "openai", "api_key": "k"},
            headers=factory.headers(user),
        )
        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == "UPSTREAM_ERROR"

    @pytest.mark.asyncio
    async def test_odd_shaped_choices_give_empty_text(self, client, factory, upstream):
        user = await factory.user()
        upstream.response = httpx.Response(200, json={"choices": ["not an object"]})
        resp = await client.post(
            "/api/v1/agent/chat",
            json={"prompt": "hi", "provider": "openai", "api_key": "k"},
            headers=factory.headers(user),
        )
        assert resp.status_code == 200
        assert resp.json() == {"text": ""}

    @pytest.mark.asyncio
    async def test_requires_auth(self, client, upstream):
        resp = await client.post(
            "/api/v1/agent/chat", json={"prompt": "hi", "provider": "openai", "api_key": "k"}
        )
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_unverified_rejected_when_required(self, app, client, factory, settings, upstream):
        app.state.settings = settings.model_copy(update={"require_verified_email": True})
        user = await factory.user(verified=False)
        resp = await client.post(
            "/api/v1/agent/chat",
            json={"prompt": "hi", "provider": "openai", "api_key": "k"},
            headers=factory.headers(user),
        )
        assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Image
# ---------------------------------------------------------------------------

class TestImage:
    @pytest.mark.asyncio
    async def test_image_returned_as_data_uri(self, app, client, factory, upstream):
        user = await factory.user()
        await store_key(app, user, "gemini", "g-stored")
        upstream.response = gemini_reply(
            {"text": "Here you go"},
            {"inlineData": {"mimeType": "image/jpeg", "data": "AAAA"}},
        )

        resp = await client.post(
            "/api/v1/agent/image",
            json={"prompt": "a cat", "images": [{"data": "QkJC"}]},
            headers=factory.headers(user),
        )
        assert resp.status_code == 200
        assert resp.json() == {"image": "data:image/jpeg;base64,AAAA", "text": "Here you go"}

        req = upstream.requests[-1]
        assert req.url.path.endswith("/models/gemini-2.5-flash-image-preview:generateContent")
        assert req.headers["x-goog-api-key"] == "g-stored"
        parts = upstream.last_json["contents"][0]["parts"]
        assert parts == [
            {"text": "a cat"},
            {"inline_data": {"mime_type": "image/png", "data": "QkJC"}},
        ]

    @pytest.mark.asyncio
    async def test_text_only_reply(self, client, factory, upstream):
        user = await factory.user()
        upstream.response = gemini_reply({"text": "cannot draw that"})
        resp = await client.post(
            "/api/v1/agent/image",
            json={"prompt": "x", "api_key": "g"},
            headers=factory.headers(user),
        )
        assert resp.status_code == 200
        assert resp.json() == {"image": None, "text": "cannot draw that"}

    @pytest.mark.asyncio
    async def test_empty_reply_is_upstream_error(self, client, factory, upstream):
        user = await factory.user()
        upstream.response = gemini_reply()
        resp = await client.post(
            "/api/v1/agent/image",
            json={"prompt": "x", "api_key": "g"},
            headers=factory.headers(user),
        )
        assert resp.status_code == 502


class TestExtractImageResult:
    def test_snake_case_inline_data(self):
        data = {
            "candidates": [
                {"content": {"parts": [{"inline_data": {"mime_type": "image/webp", "data": "Zg"}}]}}
            ]
        }
        assert extract_image_result(data) == {"image": "data:image/webp;base64,Zg", "text": None}

    def test_default_mime(self):
        data = {"candidates": [{"content": {"parts": [{"inlineData": {"data": "Zg"}}]}}]}
        assert extract_image_result(data)["image"] == "data:image/png;base64,Zg"

    def test_no_candidates(self):
        with pytest.raises(UpstreamError):
            extract_image_result({})

    @pytest.mark.parametrize(
        "data",
        [
            {"candidates": ["x"]},
            {"candidates": [{"content": "x"}]},
            {"candidates": [{"content": {"parts": ["x", {"inlineData": "x"}]}}]},
        ],
    )
    def test_malformed_candidates(self, data):
        with pytest.raises(UpstreamError):
            extract_image_result(data)
