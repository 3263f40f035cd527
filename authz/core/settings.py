"""Application settings loaded from environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict

ACCESS_TOKEN_TTL_DEFAULT = 3600
REFRESH_TOKEN_TTL_DEFAULT = 2_592_000
AUTH_CODE_TTL_DEFAULT = 600
PERMISSION_CACHE_TTL_DEFAULT = 300
BLACKLIST_GRACE_DEFAULT = 60
STORE_TIMEOUT_DEFAULT = 5.0
DB_POOL_SIZE_DEFAULT = 5
DB_MAX_OVERFLOW_DEFAULT = 10
DB_PORT_DEFAULT = 5432
LIST_LIMIT_DEFAULT = 50
LIST_LIMIT_MAX = 100


class DatabaseSettings(BaseSettings):
    """Connection and pool settings for the token store (PostgreSQL via asyncpg)."""

    model_config = SettingsConfigDict(env_prefix="AUTH_DB_")

    host: str = "localhost"
    port: int = DB_PORT_DEFAULT
    user: str = "authz"
    password: str = "authz"
    database: str = "authz"
    pool_size: int = DB_POOL_SIZE_DEFAULT
    max_overflow: int = DB_MAX_OVERFLOW_DEFAULT
    pool_pre_ping: bool = True
    echo: bool = False

    @property
    def async_url(self) -> str:
        """Build async PostgreSQL connection URL."""
        return (
            f"postgresql+asyncpg://{self.user}:{self.password}"
            f"@{self.host}:{self.port}/{self.database}"
        )


class AuthSettings(BaseSettings):
    """OAuth token, code and permission cache settings."""

    model_config = SettingsConfigDict(env_prefix="AUTH_")

    issuer_url: str = "http://localhost:8000"
    cors_origins: str = ""
    signing_key_encryption_key: str = ""
    auth_code_ttl: int = AUTH_CODE_TTL_DEFAULT
    permission_cache_ttl: int = PERMISSION_CACHE_TTL_DEFAULT
    blacklist_grace_seconds: int = BLACKLIST_GRACE_DEFAULT
    store_timeout_seconds: float | None = STORE_TIMEOUT_DEFAULT
    allow_plain_pkce: bool = False
    log_level: str = "INFO"

    def get_cors_origin_list(self) -> list[str]:
        """Parse comma-separated CORS origins."""
        if not self.cors_origins:
            return []
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
