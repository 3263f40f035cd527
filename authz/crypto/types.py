"""Type definitions for signing keys and JWT payloads."""

from pydantic import BaseModel, ConfigDict

TOKEN_USE_ACCESS = "access"
TOKEN_USE_REFRESH = "refresh"


class SigningKeyData(BaseModel):
    """An RSA keypair for JWT signing."""

    kid: str
    private_key_pem: str
    public_key_pem: str


class AccessTokenClaims(BaseModel):
    """Claims carried by an access token."""

    sub: str | None = None
    client_id: str
    scope: str
    permissions: list[str] = []
    jti: str
    ttl_seconds: int


class RefreshTokenClaims(BaseModel):
    """Claims carried by a refresh token."""

    sub: str
    client_id: str
    scope: str
    jti: str
    ttl_seconds: int


class IdTokenClaims(BaseModel):
    """Claims bundle for an OpenID Connect id_token."""

    sub: str
    aud: str
    email: str
    name: str | None = None
    nonce: str | None = None
    ttl_seconds: int


class DecodedToken(BaseModel):
    """Decoded and verified JWT claims."""

    model_config = ConfigDict(extra="allow")

    sub: str | None = None
    iss: str = ""
    aud: str = ""
    client_id: str = ""
    scope: str = ""
    permissions: list[str] = []
    jti: str = ""
    token_use: str = ""
    iat: int = 0
    exp: int = 0
    email: str = ""
    name: str | None = None
    nonce: str | None = None
