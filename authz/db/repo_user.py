"""User lookups used by token issuance and role assignment."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from authz.db.models_user import UserEntity


async def get_user_by_id(session: AsyncSession, user_id: str) -> UserEntity | None:
    """Look up a user by primary key."""
    stmt = select(UserEntity).where(UserEntity.id == user_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_active_user(session: AsyncSession, user_id: str) -> UserEntity | None:
    """Look up a user by primary key, ignoring deactivated accounts."""
    user = await get_user_by_id(session, user_id)
    if user is None or not user.is_active:
        return None
    return user
