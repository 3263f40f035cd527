"""Role and permission mutations that keep the permission cache consistent.

Every mutation that changes which permissions a user holds invalidates the
cache entry of each affected user inside the transaction, after the writes
have been flushed. A failed invalidation aborts the mutation. The same users
are invalidated again once the transaction commits, so a concurrent reader
that repopulated the cache from pre-commit state cannot keep a stale entry.
"""

import logging
from collections.abc import Iterable
from enum import StrEnum

from pydantic import BaseModel, ConfigDict
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from authz.core.errors import (
    Ok,
    Result,
    conflict,
    not_found,
    validation_error,
    wrap_store_errors,
)
from authz.core.settings import LIST_LIMIT_DEFAULT, LIST_LIMIT_MAX
from authz.db.base import new_row_id
from authz.db.models_rbac import (
    PermissionEntity,
    RoleEntity,
    RolePermissionEntity,
    UserRoleEntity,
)
from authz.db.repo_user import get_user_by_id
from authz.db.unit_of_work import UnitOfWork
from authz.rbac.cache import PermissionCache

logger = logging.getLogger(__name__)


class PermissionType(StrEnum):
    """Where a permission applies."""

    API = "API"
    MENU = "MENU"
    DATA = "DATA"


class Role(BaseModel):
    """A role as returned by the service."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None = None
    is_active: bool = True


class Permission(BaseModel):
    """A permission as returned by the service."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    permission_type: PermissionType
    description: str | None = None
    is_active: bool = True


async def _users_with_role(session: AsyncSession, role_id: str) -> list[str]:
    stmt = select(UserRoleEntity.user_id).where(UserRoleEntity.role_id == role_id)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def _users_with_permission(session: AsyncSession, permission_id: str) -> list[str]:
    stmt = (
        select(UserRoleEntity.user_id)
        .join(RolePermissionEntity, RolePermissionEntity.role_id == UserRoleEntity.role_id)
        .where(RolePermissionEntity.permission_id == permission_id)
        .distinct()
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


class RoleService:
    """Mutators and readers for the role/permission graph."""

    def __init__(self, uow: UnitOfWork, cache: PermissionCache) -> None:
        self._uow = uow
        self._cache = cache

    async def _invalidate(self, user_ids: Iterable[str]) -> None:
        targets = sorted(set(user_ids))
        for user_id in targets:
            await self._cache.invalidate(user_id)

        async def _after_commit() -> None:
            for user_id in targets:
                await self._cache.invalidate(user_id)

        if targets:
            self._uow.after_commit(_after_commit)
            logger.debug("Invalidated cached permissions for %d users", len(targets))

    @wrap_store_errors
    async def create_role(self, name: str, description: str | None = None) -> Result[Role]:
        """Create a role with a unique name."""
        if not name.strip():
            return validation_error("role name must not be empty")
        try:
            async with self._uow.atomic() as session:
                taken = await session.execute(
                    select(RoleEntity.id).where(RoleEntity.name == name)
                )
                if taken.scalar_one_or_none() is not None:
                    return conflict(f"role {name!r} already exists")
                entity = RoleEntity(
                    id=new_row_id(),
                    name=name,
                    description=description,
                    is_active=True,
                )
                session.add(entity)
        except IntegrityError:
            return conflict(f"role {name!r} already exists")
        logger.info("Created role %s", name)
        return Ok(Role.model_validate(entity))

    @wrap_store_errors
    async def find_role_by_id(self, role_id: str) -> Result[Role]:
        """Look up a role by id."""
        role = await self._uow.session.get(RoleEntity, role_id)
        if role is None:
            return not_found("role not found")
        return Ok(Role.model_validate(role))

    @wrap_store_errors
    async def find_role_by_name(self, name: str) -> Result[Role]:
        """Look up a role by its unique name."""
        stmt = select(RoleEntity).where(RoleEntity.name == name)
        role = (await self._uow.session.execute(stmt)).scalar_one_or_none()
        if role is None:
            return not_found(f"role {name!r} not found")
        return Ok(Role.model_validate(role))

    @wrap_store_errors
    async def list_roles(
        self, limit: int = LIST_LIMIT_DEFAULT, offset: int = 0
    ) -> Result[list[Role]]:
        """Page through roles, newest first."""
        if limit <= 0 or offset < 0:
            return validation_error("limit must be positive and offset non-negative")
        stmt = (
            select(RoleEntity)
            .order_by(RoleEntity.created_at.desc(), RoleEntity.id.desc())
            .limit(min(limit, LIST_LIMIT_MAX))
            .offset(offset)
        )
        result = await self._uow.session.execute(stmt)
        return Ok([Role.model_validate(r) for r in result.scalars()])

    @wrap_store_errors
    async def update_role(
        self,
        role_id: str,
        name: str | None = None,
        description: str | None = None,
    ) -> Result[Role]:
        """Rename or re-describe a role.

        The uniqueness check and the write share one transaction; a rename that
        loses a race to a concurrent writer surfaces as a conflict.
        """
        if name is not None and not name.strip():
            return validation_error("role name must not be empty")
        try:
            async with self._uow.atomic() as session:
                role = await session.get(RoleEntity, role_id, with_for_update=True)
                if role is None:
                    return not_found("role not found")
                if name is not None and name != role.name:
                    taken = await session.execute(
                        select(RoleEntity.id).where(
                            RoleEntity.name == name, RoleEntity.id != role_id
                        )
                    )
                    if taken.scalar_one_or_none() is not None:
                        return conflict(f"role {name!r} already exists")
                    role.name = name
                if description is not None:
                    role.description = description
        except IntegrityError:
            return conflict(f"role {name!r} already exists")
        logger.info("Updated role %s", role_id)
        return Ok(Role.model_validate(role))

    @wrap_store_errors
    async def create_permission(
        self,
        name: str,
        permission_type: str = PermissionType.API,
        description: str | None = None,
    ) -> Result[Permission]:
        """Create a ``resource:action`` permission with a unique name."""
        if ":" not in name:
            return validation_error("permission name must look like resource:action")
        try:
            kind = PermissionType(permission_type)
        except ValueError:
            return validation_error(f"invalid permission type: {permission_type}")
        try:
            async with self._uow.atomic() as session:
                taken = await session.execute(
                    select(PermissionEntity.id).where(PermissionEntity.name == name)
                )
                if taken.scalar_one_or_none() is not None:
                    return conflict(f"permission {name!r} already exists")
                entity = PermissionEntity(
                    id=new_row_id(),
                    name=name,
                    permission_type=kind.value,
                    description=description,
                    is_active=True,
                )
                session.add(entity)
        except IntegrityError:
            return conflict(f"permission {name!r} already exists")
        return Ok(Permission.model_validate(entity))

    @wrap_store_errors
    async def delete_role(self, role_id: str) -> Result[None]:
        """Delete a role together with its permission and user links."""
        async with self._uow.atomic() as session:
            role = await session.get(RoleEntity, role_id)
            if role is None:
                return not_found("role not found")
            affected = await _users_with_role(session, role_id)
            await session.execute(
                delete(RolePermissionEntity).where(RolePermissionEntity.role_id == role_id)
            )
            await session.execute(
                delete(UserRoleEntity).where(UserRoleEntity.role_id == role_id)
            )
            await session.delete(role)
            await session.flush()
            await self._invalidate(affected)
        logger.info("Deleted role %s affecting %d users", role_id, len(affected))
        return Ok(None)

    @wrap_store_errors
    async def set_role_active(self, role_id: str, is_active: bool) -> Result[Role]:
        """Enable or disable a role for every user holding it."""
        async with self._uow.atomic() as session:
            role = await session.get(RoleEntity, role_id)
            if role is None:
                return not_found("role not found")
            role.is_active = is_active
            await session.flush()
            await self._invalidate(await _users_with_role(session, role_id))
        logger.info("Set role %s active=%s", role_id, is_active)
        return Ok(Role.model_validate(role))

    @wrap_store_errors
    async def set_permission_active(
        self, permission_id: str, is_active: bool
    ) -> Result[Permission]:
        """Enable or disable a permission in every role that links it."""
        async with self._uow.atomic() as session:
            permission = await session.get(PermissionEntity, permission_id)
            if permission is None:
                return not_found("permission not found")
            permission.is_active = is_active
            await session.flush()
            await self._invalidate(await _users_with_permission(session, permission_id))
        logger.info("Set permission %s active=%s", permission.name, is_active)
        return Ok(Permission.model_validate(permission))

    @wrap_store_errors
    async def assign_permissions_to_role(
        self, role_id: str, permission_ids: list[str]
    ) -> Result[None]:
        """Link permissions to a role; existing links are left as they are."""
        async with self._uow.atomic() as session:
            if await session.get(RoleEntity, role_id) is None:
                return not_found("role not found")
            existing = set(
                (
                    await session.execute(
                        select(RolePermissionEntity.permission_id).where(
                            RolePermissionEntity.role_id == role_id
                        )
                    )
                ).scalars()
            )
            requested = list(dict.fromkeys(permission_ids))
            for permission_id in requested:
                if await session.get(PermissionEntity, permission_id) is None:
                    return not_found(f"permission {permission_id} not found")
            for permission_id in requested:
                if permission_id not in existing:
                    session.add(
                        RolePermissionEntity(role_id=role_id, permission_id=permission_id)
                    )
            await session.flush()
            await self._invalidate(await _users_with_role(session, role_id))
        return Ok(None)

    @wrap_store_errors
    async def remove_permissions_from_role(
        self, role_id: str, permission_ids: list[str]
    ) -> Result[None]:
        """Unlink permissions from a role."""
        async with self._uow.atomic() as session:
            if await session.get(RoleEntity, role_id) is None:
                return not_found("role not found")
            await session.execute(
                delete(RolePermissionEntity).where(
                    RolePermissionEntity.role_id == role_id,
                    RolePermissionEntity.permission_id.in_(permission_ids),
                )
            )
            await session.flush()
            await self._invalidate(await _users_with_role(session, role_id))
        return Ok(None)

    @wrap_store_errors
    async def assign_role_to_user(self, user_id: str, role_id: str) -> Result[None]:
        """Grant a role to a user."""
        async with self._uow.atomic() as session:
            if await session.get(RoleEntity, role_id) is None:
                return not_found("role not found")
            if await get_user_by_id(session, user_id) is None:
                return not_found("user not found")
            link = await session.get(UserRoleEntity, (user_id, role_id))
            if link is not None:
                return conflict("user already has this role")
            session.add(UserRoleEntity(user_id=user_id, role_id=role_id))
            await session.flush()
            await self._invalidate([user_id])
        logger.info("Assigned role %s to user %s", role_id, user_id)
        return Ok(None)

    @wrap_store_errors
    async def remove_role_from_user(self, user_id: str, role_id: str) -> Result[None]:
        """Revoke a role from a user."""
        async with self._uow.atomic() as session:
            result = await session.execute(
                delete(UserRoleEntity).where(
                    UserRoleEntity.user_id == user_id,
                    UserRoleEntity.role_id == role_id,
                )
            )
            if result.rowcount == 0:
                return not_found("user does not have this role")
            await session.flush()
            await self._invalidate([user_id])
        logger.info("Removed role %s from user %s", role_id, user_id)
        return Ok(None)

    @wrap_store_errors
    async def get_role_permissions(self, role_id: str) -> Result[list[Permission]]:
        """List the permissions linked to a role."""
        session = self._uow.session
        if await session.get(RoleEntity, role_id) is None:
            return not_found("role not found")
        stmt = (
            select(PermissionEntity)
            .join(
                RolePermissionEntity,
                RolePermissionEntity.permission_id == PermissionEntity.id,
            )
            .where(RolePermissionEntity.role_id == role_id)
            .order_by(PermissionEntity.name)
        )
        result = await session.execute(stmt)
        return Ok([Permission.model_validate(p) for p in result.scalars()])

    @wrap_store_errors
    async def get_user_roles(self, user_id: str) -> Result[list[Role]]:
        """List the roles assigned to a user."""
        stmt = (
            select(RoleEntity)
            .join(UserRoleEntity, UserRoleEntity.role_id == RoleEntity.id)
            .where(UserRoleEntity.user_id == user_id)
            .order_by(RoleEntity.name)
        )
        result = await self._uow.session.execute(stmt)
        return Ok([Role.model_validate(r) for r in result.scalars()])
