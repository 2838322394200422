"""
Database connection and session management.

The `Database` handle is built by `create_app` and stored on `app.state.db`;
request handlers receive sessions through the `get_session` dependency.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel


class Database:
    """Owns the async engine and session factory for one application."""

    def __init__(self, url: str, *, echo: bool = False):
        self.url = url
        self.engine = create_async_engine(url, echo=echo, future=True)
        self.session_factory = sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def create_all(self) -> None:
        """Create all tables (development and tests)."""
        # Import for side effect: populate SQLModel.metadata
        import second_brain.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self):
        """Context manager for use outside of the FastAPI request lifecycle."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions."""
    db: Database = request.app.state.db
    async with db.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
