"""
Tests for Authentication.

Covers:
- Password hashing
- JWT creation and decoding
- CSRF middleware
- Security headers middleware
- Signup, login (cookie + Bearer), logout, verification and avatar settings
"""

from __future__ import annotations

import uuid
from datetime import timedelta

import jwt as pyjwt
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from second_brain.core.auth import (
    create_jwt,
    decode_jwt,
    generate_csrf_token,
    hash_password,
    verify_password,
)
from second_brain.core.config import Settings
from second_brain.core.middleware import (
    CSRF_COOKIE,
    CSRF_HEADER,
    SECURITY_HEADERS,
    SESSION_COOKIE,
    UPLOAD_CSP,
    CSRFMiddleware,
    SecurityHeadersMiddleware,
)

PASSWORD = "a-sound-password"


# ---------------------------------------------------------------------------
# Unit Tests: Password hashing
# ---------------------------------------------------------------------------

class TestPasswordHashing:
    def test_hash_and_verify(self):
        password = "MySecureP@ssw0rd!"
        hashed = hash_password(password)
        assert hashed != password
        assert verify_password(password, hashed)

    def test_wrong_password_fails(self):
        hashed = hash_password("correct-password")
        assert not verify_password("wrong-password", hashed)

    def test_different_hashes_for_same_password(self):
        """bcrypt uses random salt, so hashes differ."""
        h1 = hash_password("same")
        h2 = hash_password("same")
        assert h1 != h2
        assert verify_password("same", h1)
        assert verify_password("same", h2)


# ---------------------------------------------------------------------------
# Unit Tests: JWT
# ---------------------------------------------------------------------------

class TestJWT:
    settings = Settings(secret_key="unit-test-secret")

    def test_create_and_decode(self):
        uid = uuid.uuid4()
        token, jti = create_jwt(uid, "a@example.com", settings=self.settings)
        payload = decode_jwt(token, settings=self.settings)
        assert payload["sub"] == str(uid)
        assert payload["email"] == "a@example.com"
        assert payload["jti"] == jti

    def test_expired_jwt_raises(self):
        token, _ = create_jwt(
            uuid.uuid4(),
            "a@example.com",
            settings=self.settings,
            expires_delta=timedelta(seconds=-1),
        )
        with pytest.raises(pyjwt.ExpiredSignatureError):
            decode_jwt(token, settings=self.settings)

    def test_tampered_jwt_raises(self):
        token, _ = create_jwt(uuid.uuid4(), "a@example.com", settings=self.settings)
        tampered = token[:-5] + "XXXXX"
        with pytest.raises(pyjwt.InvalidSignatureError):
            decode_jwt(tampered, settings=self.settings)

    def test_other_secret_rejected(self):
        token, _ = create_jwt(uuid.uuid4(), "a@example.com", settings=self.settings)
        with pytest.raises(pyjwt.InvalidSignatureError):
            decode_jwt(token, settings=Settings(secret_key="another-secret"))


class TestCSRFToken:
    def test_generates_unique_tokens(self):
        t1 = generate_csrf_token()
        t2 = generate_csrf_token()
        assert t1 != t2
        assert len(t1) > 20


# ---------------------------------------------------------------------------
# Integration Tests: Middleware
# ---------------------------------------------------------------------------

class TestSecurityHeadersMiddleware:
    def test_headers_present(self):
        app = FastAPI()
        app.add_middleware(SecurityHeadersMiddleware)

        @app.get("/test")
        async def test_endpoint():
            return {"ok": True}

        client = TestClient(app)
        resp = client.get("/test")
        assert resp.status_code == 200
        for header, value in SECURITY_HEADERS.items():
            assert resp.headers.get(header) == value
        assert "max-age" in resp.headers["Strict-Transport-Security"]

    def test_hsts_can_be_disabled(self):
        app = FastAPI()
        app.add_middleware(SecurityHeadersMiddleware, hsts=False)

        @app.get("/test")
        async def test_endpoint():
            return {"ok": True}

        resp = TestClient(app).get("/test")
        assert "Strict-Transport-Security" not in resp.headers
        assert resp.headers["X-Frame-Options"] == "DENY"

    def test_uploads_are_sandboxed(self):
        app = FastAPI()
        app.add_middleware(SecurityHeadersMiddleware, upload_prefix="/uploads")

        @app.get("/uploads/{name}")
        async def stored(name: str):
            return {"name": name}

        @app.get("/api")
        async def api():
            return {"ok": True}

        client = TestClient(app)
        assert client.get("/uploads/page.html").headers["Content-Security-Policy"] == UPLOAD_CSP
        assert (
            client.get("/api").headers["Content-Security-Policy"]
            == SECURITY_HEADERS["Content-Security-Policy"]
        )


class TestCSRFMiddleware:
    def _make_app(self) -> FastAPI:
        app = FastAPI()
        app.add_middleware(CSRFMiddleware)

        @app.get("/test")
        async def get_test():
            return {"ok": True}

        @app.post("/test")
        async def post_test():
            return {"ok": True}

        return app

    def test_get_passes_without_csrf(self):
        client = TestClient(self._make_app(), cookies={SESSION_COOKIE: "some-jwt"})
        resp = client.get("/test")
        assert resp.status_code == 200

    def test_post_with_bearer_skips_csrf(self):
        client = TestClient(self._make_app(), cookies={SESSION_COOKIE: "some-jwt"})
        resp = client.post("/test", headers={"Authorization": "Bearer xxx"})
        assert resp.status_code == 200

    def test_post_without_session_cookie_passes(self):
        """No session cookie = not a browser request, skip CSRF."""
        client = TestClient(self._make_app())
        resp = client.post("/test")
        assert resp.status_code == 200

    def test_post_with_session_but_no_csrf_fails(self):
        client = TestClient(self._make_app(), cookies={SESSION_COOKIE: "some-jwt"})
        resp = client.post("/test")
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "CSRF_VALIDATION_FAILED"

    def test_post_with_matching_csrf_passes(self):
        csrf_token = "test-csrf-token"
        client = TestClient(
            self._make_app(),
            cookies={SESSION_COOKIE: "some-jwt", CSRF_COOKIE: csrf_token},
        )
        resp = client.post("/test", headers={CSRF_HEADER: csrf_token})
        assert resp.status_code == 200

    def test_post_with_mismatched_csrf_fails(self):
        client = TestClient(
            self._make_app(),
            cookies={SESSION_COOKIE: "some-jwt", CSRF_COOKIE: "token-a"},
        )
        resp = client.post("/test", headers={CSRF_HEADER: "token-b"})
        assert resp.status_code == 403
        assert resp.json() == {
            "error": {
                "code": "CSRF_VALIDATION_FAILED",
                "message": "Invalid or missing CSRF token.",
                "status": 403,
            }
        }

    def test_login_with_stale_session_skips_csrf(self):
        app = self._make_app()

        @app.post("/auth/login")
        async def login():
            return {"ok": True}

        client = TestClient(app, cookies={SESSION_COOKIE: "expired-jwt"})
        assert client.post("/auth/login").status_code == 200
        assert client.post("/test").status_code == 403


# ---------------------------------------------------------------------------
# Integration Tests: Auth Endpoints
# ---------------------------------------------------------------------------

class TestAuthEndpoints:
    @pytest.mark.asyncio
    async def test_signup(self, client):
        resp = await client.post(
            "/auth/signup",
            json={"name": "Ada", "email": "ada@example.com", "password": "long-enough"},
        )
        assert resp.status_code == 201
        assert resp.json()["email"] == "ada@example.com"
        assert resp.json()["access_token"] is None

    @pytest.mark.asyncio
    async def test_signup_duplicate_email(self, client, factory):
        await factory.user("taken@example.com")
        resp = await client.post(
            "/auth/signup",
            json={"name": "Ada", "email": "taken@example.com", "password": "long-enough"},
        )
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_signup_validates_fields(self, client):
        resp = await client.post(
            "/auth/signup", json={"name": "Ada", "email": "not-an-email", "password": "x"}
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_login_issues_token_and_cookies(self, client, factory):
        user = await factory.user("lee@example.com", password=PASSWORD)
        resp = await client.post(
            "/auth/login", json={"email": "lee@example.com", "password": PASSWORD}
        )
        assert resp.status_code == 200
        token = resp.json()["access_token"]
        assert token
        assert SESSION_COOKIE in resp.cookies
        assert CSRF_COOKIE in resp.cookies

        me = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["id"] == str(user.id)

    @pytest.mark.asyncio
    async def test_login_bad_password(self, client, factory):
        await factory.user("lee@example.com", password=PASSWORD)
        resp = await client.post(
            "/auth/login", json={"email": "lee@example.com", "password": "wrong-password"}
        )
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "UNAUTHENTICATED"

    @pytest.mark.asyncio
    async def test_login_unknown_user(self, client):
        resp = await client.post(
            "/auth/login", json={"email": "ghost@example.com", "password": "whatever1"}
        )
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_cookie_session_requires_csrf_header(self, client, factory):
        await factory.user("cookie@example.com", password=PASSWORD)
        resp = await client.post(
            "/auth/login", json={"email": "cookie@example.com", "password": PASSWORD}
        )
        assert resp.status_code == 200

        # Cookie alone authenticates safe requests
        me = await client.get("/api/v1/users/me")
        assert me.status_code == 200

        note = {"title": "via cookie", "type": "NOTE"}
        resp = await client.post("/api/v1/content", json=note)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "CSRF_VALIDATION_FAILED"

        csrf = client.cookies.get(CSRF_COOKIE)
        resp = await client.post("/api/v1/content", json=note, headers={CSRF_HEADER: csrf})
        assert resp.status_code == 201

        resp = await client.post("/auth/logout", headers={CSRF_HEADER: csrf})
        assert resp.status_code == 200
        assert SESSION_COOKIE not in client.cookies

        me = await client.get("/api/v1/users/me")
        assert me.status_code == 401

    @pytest.mark.asyncio
    async def test_verify_email(self, client, factory):
        user = await factory.user("new@example.com", verified=False)
        resp = await client.post("/auth/verify", json={"email": "new@example.com"})
        assert resp.status_code == 200
        assert resp.json()["success"] is True

        me = await client.get("/api/v1/users/me", headers=factory.headers(user))
        assert me.json()["email_verified"] is not None

    @pytest.mark.asyncio
    async def test_verify_unknown_email(self, client):
        resp = await client.post("/auth/verify", json={"email": "nobody@example.com"})
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_avatar_settings(self, client, factory):
        user = await factory.user()
        resp = await client.post(
            "/auth/settings",
            json={"avatar_url": "https://example.com/me.png"},
            headers=factory.headers(user),
        )
        assert resp.status_code == 200

        me = await client.get("/api/v1/users/me", headers=factory.headers(user))
        assert me.json()["avatar_url"] == "https://example.com/me.png"

    @pytest.mark.asyncio
    async def test_avatar_requires_auth(self, client):
        resp = await client.post("/auth/settings", json={"avatar_url": "x"})
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_token_for_deleted_user_rejected(self, client, settings):
        token, _ = create_jwt(uuid.uuid4(), "gone@example.com", settings=settings)
        resp = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
