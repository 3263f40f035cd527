"""SQLAlchemy models for OAuth clients, authorization codes, refresh tokens and revocations."""

from sqlalchemy import JSON, Boolean, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, MappedColumn, mapped_column

from authz.core.settings import ACCESS_TOKEN_TTL_DEFAULT, REFRESH_TOKEN_TTL_DEFAULT
from authz.db.base import (
    ROW_ID_LENGTH,
    ActiveFlag,
    BaseEntity,
    CreatedAt,
    ExpiresAt,
    OptionalTimestamp,
    RowId,
)

DEFAULT_GRANT_TYPES = ("authorization_code", "refresh_token")
DEFAULT_ALLOWED_SCOPES = ("openid", "profile", "email")


def _owner(table: str) -> MappedColumn[str]:
    return mapped_column(String(ROW_ID_LENGTH), ForeignKey(f"{table}.id"))


class OAuthClientEntity(BaseEntity):
    """Registered relying party, either PUBLIC or CONFIDENTIAL."""

    __tablename__ = "oauth_clients"

    id: Mapped[RowId]
    client_id: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    client_secret_hash: Mapped[str | None] = mapped_column(String(255))
    client_name: Mapped[str] = mapped_column(String(255))
    client_type: Mapped[str] = mapped_column(String(20), default="CONFIDENTIAL")
    redirect_uris: Mapped[list[str]] = mapped_column(JSON, default=list)
    grant_types: Mapped[list[str]] = mapped_column(
        JSON, default=lambda: list(DEFAULT_GRANT_TYPES)
    )
    response_types: Mapped[list[str]] = mapped_column(JSON, default=lambda: ["code"])
    allowed_scopes: Mapped[list[str]] = mapped_column(
        JSON, default=lambda: list(DEFAULT_ALLOWED_SCOPES)
    )
    # Granted verbatim to client_credentials tokens.
    client_permissions: Mapped[list[str]] = mapped_column(JSON, default=list)
    access_token_ttl: Mapped[int] = mapped_column(Integer, default=ACCESS_TOKEN_TTL_DEFAULT)
    refresh_token_ttl: Mapped[int] = mapped_column(Integer, default=REFRESH_TOKEN_TTL_DEFAULT)
    require_pkce: Mapped[bool] = mapped_column(Boolean, default=True)
    require_consent: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[ActiveFlag]
    created_at: Mapped[CreatedAt]


class AuthorizationCodeEntity(BaseEntity):
    """One authorization code; ``is_used`` flips exactly once."""

    __tablename__ = "authorization_codes"

    code: Mapped[str] = mapped_column(String(64), primary_key=True)
    client_id: Mapped[str] = _owner("oauth_clients")
    user_id: Mapped[str] = _owner("users")
    redirect_uri: Mapped[str] = mapped_column(String(2048))
    scope: Mapped[str] = mapped_column(String(1024))
    nonce: Mapped[str | None] = mapped_column(String(256))
    code_challenge: Mapped[str | None] = mapped_column(String(128))
    code_challenge_method: Mapped[str | None] = mapped_column(String(10))
    expires_at: Mapped[ExpiresAt]
    is_used: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[CreatedAt]


class RefreshTokenEntity(BaseEntity):
    """Stored refresh token; only the SHA-256 digest of the token is kept."""

    __tablename__ = "refresh_tokens"

    id: Mapped[RowId]
    jti: Mapped[str] = mapped_column(String(64), unique=True)
    token_hash: Mapped[str] = mapped_column(String(64))
    user_id: Mapped[str] = _owner("users")
    client_id: Mapped[str] = _owner("oauth_clients")
    scope: Mapped[str] = mapped_column(String(1024))
    expires_at: Mapped[ExpiresAt]
    is_revoked: Mapped[bool] = mapped_column(Boolean, default=False)
    revoked_at: Mapped[OptionalTimestamp]
    previous_token_id: Mapped[str | None] = mapped_column(
        String(ROW_ID_LENGTH), ForeignKey("refresh_tokens.id")
    )
    created_at: Mapped[CreatedAt]


class TokenBlacklistEntity(BaseEntity):
    """Revoked token identifier, kept until shortly after the token expires."""

    __tablename__ = "token_blacklist"

    id: Mapped[RowId]
    jti: Mapped[str] = mapped_column(String(64), index=True)
    token_type: Mapped[str] = mapped_column(String(20))
    user_id: Mapped[str | None] = mapped_column(String(ROW_ID_LENGTH))
    client_id: Mapped[str | None] = mapped_column(String(128))
    expires_at: Mapped[ExpiresAt]
    reason: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[CreatedAt]
