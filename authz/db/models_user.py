"""SQLAlchemy model for the users table."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from authz.db.base import ActiveFlag, BaseEntity, CreatedAt, RowId


class UserEntity(BaseEntity):
    """A resource owner; authenticated by the external session layer."""

    __tablename__ = "users"

    id: Mapped[RowId]
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[str | None] = mapped_column(String(255))
    is_active: Mapped[ActiveFlag]
    created_at: Mapped[CreatedAt]
