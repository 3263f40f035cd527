"""Resolve a user's effective permissions through their roles."""

import logging
from typing import Protocol

from sqlalchemy import exists, select

from authz.core.errors import Ok, Result, wrap_store_errors
from authz.core.settings import PERMISSION_CACHE_TTL_DEFAULT
from authz.db.models_oauth import OAuthClientEntity
from authz.db.models_rbac import (
    PermissionEntity,
    RoleEntity,
    RolePermissionEntity,
    UserRoleEntity,
)
from authz.db.unit_of_work import UnitOfWork
from authz.rbac.cache import PermissionCache

logger = logging.getLogger(__name__)


class PermissionResolver(Protocol):
    """Source of the permission names embedded into user tokens."""

    async def get_user_permissions(self, user_id: str) -> Result[list[str]]: ...


class SqlPermissionResolver:
    """Resolves ``user_roles -> roles -> role_permissions -> permissions`` in SQL."""

    def __init__(
        self,
        uow: UnitOfWork,
        cache: PermissionCache,
        *,
        cache_ttl: int = PERMISSION_CACHE_TTL_DEFAULT,
    ) -> None:
        self._uow = uow
        self._cache = cache
        self._cache_ttl = cache_ttl

    @wrap_store_errors
    async def get_user_permissions(self, user_id: str) -> Result[list[str]]:
        """Return the de-duplicated permission names granted to ``user_id``."""
        cached = await self._cache.get(user_id)
        if cached is not None:
            return Ok(cached)

        stmt = (
            select(PermissionEntity.name)
            .join(
                RolePermissionEntity,
                RolePermissionEntity.permission_id == PermissionEntity.id,
            )
            .join(RoleEntity, RoleEntity.id == RolePermissionEntity.role_id)
            .join(UserRoleEntity, UserRoleEntity.role_id == RoleEntity.id)
            .where(
                UserRoleEntity.user_id == user_id,
                RoleEntity.is_active.is_(True),
                PermissionEntity.is_active.is_(True),
            )
            .distinct()
        )
        result = await self._uow.session.execute(stmt)
        permissions = sorted(set(result.scalars().all()))

        try:
            await self._cache.set(user_id, permissions, self._cache_ttl)
        except Exception:
            logger.warning("Failed to cache permissions for user %s", user_id, exc_info=True)
        return Ok(permissions)

    @wrap_store_errors
    async def has_permission(self, user_id: str, permission_name: str) -> Result[bool]:
        """Check a single permission for a user without consulting the cache."""
        stmt = select(
            exists()
            .where(UserRoleEntity.user_id == user_id)
            .where(RoleEntity.id == UserRoleEntity.role_id)
            .where(RoleEntity.is_active.is_(True))
            .where(RolePermissionEntity.role_id == RoleEntity.id)
            .where(PermissionEntity.id == RolePermissionEntity.permission_id)
            .where(PermissionEntity.is_active.is_(True))
            .where(PermissionEntity.name == permission_name)
        )
        result = await self._uow.session.execute(stmt)
        return Ok(bool(result.scalar()))

    @wrap_store_errors
    async def has_permission_for_client(
        self, client_id: str, permission_name: str
    ) -> Result[bool]:
        """Check whether a client's own permission list grants ``permission_name``."""
        stmt = select(OAuthClientEntity.client_permissions).where(
            OAuthClientEntity.client_id == client_id
        )
        result = await self._uow.session.execute(stmt)
        granted = result.scalar_one_or_none() or []
        return Ok(permission_name in granted)
