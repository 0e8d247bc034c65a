"""Async engine and session factory shared by the API, jobs and scripts."""

from __future__ import annotations

from typing import AsyncIterator, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from loyalty_api.core.settings import settings

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]


engine = create_async_engine(settings.database_url, future=True, pool_pre_ping=True)

async_session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a request-scoped session."""

    async with async_session() as session:
        yield session


def get_session_factory() -> SessionFactory:
    """FastAPI dependency for work that opens its own sessions (jobs)."""

    return async_session


async def open_session(session_factory: SessionFactory) -> AsyncSession:
    """Resolve a session from either a sync or an async factory."""

    maybe_session = session_factory()
    if isinstance(maybe_session, AsyncSession):
        return maybe_session
    return await maybe_session


__all__ = ["SessionFactory", "async_session", "engine", "get_session", "get_session_factory", "open_session"]
