"""SQLAlchemy models for roles, permissions, and their assignments."""

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from authz.db.base import ROW_ID_LENGTH, ActiveFlag, BaseEntity, CreatedAt, RowId


class RoleEntity(BaseEntity):
    """Named bundle of permissions assignable to users."""

    __tablename__ = "roles"

    id: Mapped[RowId]
    name: Mapped[str] = mapped_column(String(100), unique=True)
    description: Mapped[str | None] = mapped_column(String(500))
    is_active: Mapped[ActiveFlag]
    created_at: Mapped[CreatedAt]


class PermissionEntity(BaseEntity):
    """A ``resource:action`` permission tagged API, MENU or DATA."""

    __tablename__ = "permissions"

    id: Mapped[RowId]
    name: Mapped[str] = mapped_column(String(200), unique=True)
    permission_type: Mapped[str] = mapped_column(String(10), default="API")
    description: Mapped[str | None] = mapped_column(String(500))
    is_active: Mapped[ActiveFlag]
    created_at: Mapped[CreatedAt]


class RolePermissionEntity(BaseEntity):
    """Role to permission link."""

    __tablename__ = "role_permissions"

    role_id: Mapped[str] = mapped_column(
        String(ROW_ID_LENGTH), ForeignKey("roles.id"), primary_key=True
    )
    permission_id: Mapped[str] = mapped_column(
        String(ROW_ID_LENGTH), ForeignKey("permissions.id"), primary_key=True
    )


class UserRoleEntity(BaseEntity):
    """User to role link."""

    __tablename__ = "user_roles"

    user_id: Mapped[str] = mapped_column(
        String(ROW_ID_LENGTH), ForeignKey("users.id"), primary_key=True
    )
    role_id: Mapped[str] = mapped_column(
        String(ROW_ID_LENGTH), ForeignKey("roles.id"), primary_key=True
    )
    created_at: Mapped[CreatedAt]
