"""Domain types for clients, codes, and token responses."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from authz.core.settings import ACCESS_TOKEN_TTL_DEFAULT, REFRESH_TOKEN_TTL_DEFAULT

GRANT_AUTHORIZATION_CODE = "authorization_code"
GRANT_REFRESH_TOKEN = "refresh_token"
GRANT_CLIENT_CREDENTIALS = "client_credentials"


class ClientType(StrEnum):
    """OAuth client confidentiality class."""

    PUBLIC = "PUBLIC"
    CONFIDENTIAL = "CONFIDENTIAL"


class Client(BaseModel):
    """A registered OAuth client as seen by the services."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    client_id: str
    client_name: str
    client_type: ClientType
    redirect_uris: list[str]
    grant_types: list[str]
    response_types: list[str]
    allowed_scopes: list[str]
    client_permissions: list[str]
    access_token_ttl: int = ACCESS_TOKEN_TTL_DEFAULT
    refresh_token_ttl: int = REFRESH_TOKEN_TTL_DEFAULT
    require_pkce: bool = True
    require_consent: bool = False
    is_active: bool = True

    @property
    def is_public(self) -> bool:
        """True for clients that cannot hold a secret."""
        return self.client_type == ClientType.PUBLIC


class ClientRegistration(BaseModel):
    """Parameters for registering a new client."""

    client_name: str
    client_type: str
    redirect_uris: list[str] = []
    grant_types: list[str] = [GRANT_AUTHORIZATION_CODE, GRANT_REFRESH_TOKEN]
    response_types: list[str] = ["code"]
    allowed_scopes: list[str] = ["openid", "profile", "email"]
    client_permissions: list[str] = []
    access_token_ttl: int = ACCESS_TOKEN_TTL_DEFAULT
    refresh_token_ttl: int = REFRESH_TOKEN_TTL_DEFAULT
    require_pkce: bool = True
    require_consent: bool = False


class ClientUpdate(BaseModel):
    """Fields to change on a registered client; unset fields are kept."""

    client_name: str | None = None
    redirect_uris: list[str] | None = None
    grant_types: list[str] | None = None
    allowed_scopes: list[str] | None = None
    client_permissions: list[str] | None = None
    access_token_ttl: int | None = None
    refresh_token_ttl: int | None = None
    require_pkce: bool | None = None
    require_consent: bool | None = None
    is_active: bool | None = None


class AuthorizeRequest(BaseModel):
    """Validated inputs of an authorization request."""

    client_id: str
    redirect_uri: str
    scope: str
    code_challenge: str | None = None
    code_challenge_method: str | None = None
    nonce: str | None = None


class AuthorizationCode(BaseModel):
    """A consumed authorization code and the grant it carries."""

    model_config = ConfigDict(from_attributes=True)

    code: str
    client_id: str
    user_id: str
    redirect_uri: str
    scope: str
    nonce: str | None = None
    code_challenge: str | None = None
    code_challenge_method: str | None = None
    expires_at: datetime


class TokenResponse(BaseModel):
    """Token pair returned by issuance and refresh (RFC 6749 section 5.1)."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    refresh_token: str | None = None
    id_token: str | None = None
    scope: str | None = None


class IntrospectionResponse(BaseModel):
    """RFC 7662 introspection response."""

    active: bool
    scope: str | None = None
    client_id: str | None = None
    sub: str | None = None
    exp: int | None = None
    iat: int | None = None
    token_type: str | None = None
    permissions: list[str] | None = None
