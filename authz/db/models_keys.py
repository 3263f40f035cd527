"""SQLAlchemy model for JWT signing keys."""

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from authz.db.base import BaseEntity, CreatedAt, OptionalTimestamp


class SigningKeyEntity(BaseEntity):
    """RSA signing key; the private half is stored Fernet-encrypted."""

    __tablename__ = "signing_keys"

    kid: Mapped[str] = mapped_column(String(64), primary_key=True)
    algorithm: Mapped[str] = mapped_column(String(10), server_default="RS256")
    private_key_pem: Mapped[str] = mapped_column(Text)
    public_key_pem: Mapped[str] = mapped_column(Text)
    # At most one row is active; rotation flips the old one off.
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[CreatedAt]
    rotated_at: Mapped[OptionalTimestamp]
