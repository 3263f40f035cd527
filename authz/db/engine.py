"""Lazily created async engine and the per-request session dependency."""

from collections.abc import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from authz.core.settings import DatabaseSettings


class _EngineHolder:
    """Engine and session factory, built on first use."""

    engine: AsyncEngine | None = None
    factory: async_sessionmaker[AsyncSession] | None = None


_holder = _EngineHolder()


def _get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _holder.factory is None:
        db = DatabaseSettings()
        _holder.engine = create_async_engine(
            db.async_url,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_pre_ping=db.pool_pre_ping,
            echo=db.echo,
        )
        _holder.factory = async_sessionmaker(
            _holder.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _holder.factory


async def dispose_engine() -> None:
    """Close pooled connections; the next session rebuilds the engine."""
    if _holder.engine is not None:
        await _holder.engine.dispose()
    _holder.engine = None
    _holder.factory = None


async def get_session() -> AsyncIterator[AsyncSession]:
    """Yield a session for one request.

    The session is not committed here. The request's ``UnitOfWork`` decides
    between commit and rollback.
    """
    async with _get_session_factory()() as session:
        yield session
