"""
Shared fixtures: a fresh app per test backed by a temporary SQLite file,
an httpx client over ASGITransport, and a small factory for seeding rows.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient

from second_brain.core.auth import create_jwt, hash_password
from second_brain.core.config import Settings
from second_brain.main import create_app
from second_brain.models.content import ContentItem
from second_brain.models.membership import Membership
from second_brain.models.organization import Organization
from second_brain.models.tag import ContentItemTag, Tag
from second_brain.models.user import User
from second_brain_shared.schemas.common import MembershipRole

PASSWORD = "correct-horse-battery"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        secret_key="test-secret-key",
        debug=True,
        log_level="warning",
        log_format="text",
        upload_dir=str(tmp_path / "uploads"),
        max_upload_bytes=1024,
    )


@pytest.fixture
async def app(settings):
    application = create_app(settings)
    await application.state.db.create_all()
    yield application
    await application.state.generation.close()
    await application.state.db.dispose()


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


class Factory:
    """Seeds rows directly through the app's Database handle."""

    def __init__(self, app, settings: Settings):
        self.db = app.state.db
        self.settings = settings
        self._n = 0

    def _next(self) -> int:
        self._n += 1
        return self._n

    async def user(
        self,
        email: Optional[str] = None,
        *,
        name: Optional[str] = None,
        verified: bool = True,
        password: str = PASSWORD,
    ) -> User:
        n = self._next()
        user = User(
            email=email or f"user{n}@example.com",
            name=name or f"User {n}",
            password_hash=hash_password(password),
            email_verified=datetime.now(timezone.utc) if verified else None,
        )
        async with self.db.session() as session:
            session.add(user)
        return user

    async def org(self, slug: Optional[str] = None, name: Optional[str] = None) -> Organization:
        n = self._next()
        org = Organization(name=name or f"Org {n}", slug=slug or f"org-{n}")
        async with self.db.session() as session:
            session.add(org)
        return org

    async def member(
        self, user: User, org: Organization, role: MembershipRole = MembershipRole.MEMBER
    ) -> Membership:
        membership = Membership(user_id=user.id, organization_id=org.id, role=role.value)
        async with self.db.session() as session:
            session.add(membership)
        return membership

    async def tag(self, name: str, org: Optional[Organization] = None) -> Tag:
        tag = Tag(name=name, organization_id=org.id if org else None)
        async with self.db.session() as session:
            session.add(tag)
        return tag

    async def content(
        self,
        owner: User,
        *,
        title: Optional[str] = None,
        org: Optional[Organization] = None,
        tags: tuple[Tag, ...] = (),
        **fields,
    ) -> ContentItem:
        fields.setdefault("type", "NOTE")
        fields.setdefault("visibility", "PRIVATE")
        item = ContentItem(
            title=title or f"Item {self._next()}",
            owner_id=owner.id,
            organization_id=org.id if org else None,
            **fields,
        )
        async with self.db.session() as session:
            session.add(item)
            await session.flush()
            for tag in tags:
                session.add(ContentItemTag(content_item_id=item.id, tag_id=tag.id))
        return item

    def headers(self, user: User) -> dict[str, str]:
        token, _ = create_jwt(user.id, user.email, settings=self.settings)
        return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def factory(app, settings) -> Factory:
    return Factory(app, settings)
