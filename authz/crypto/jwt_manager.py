"""JWT creation and verification using RS256."""

from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from jwt.types import Options

from authz.crypto.types import (
    TOKEN_USE_ACCESS,
    TOKEN_USE_REFRESH,
    AccessTokenClaims,
    DecodedToken,
    IdTokenClaims,
    RefreshTokenClaims,
)


class JWTManager:
    """Creates and verifies RS256-signed JWT tokens.

    Tokens are signed with the active key. Verification picks the public key
    named by the token's ``kid`` header from ``verification_keys``, so tokens
    signed before a key rotation stay valid until they expire.
    """

    def __init__(
        self,
        private_key_pem: str,
        public_key_pem: str,
        kid: str,
        issuer: str,
        verification_keys: Mapping[str, str] | None = None,
    ) -> None:
        self._private_key_pem = private_key_pem
        self._public_key_pem = public_key_pem
        self._kid = kid
        self._issuer = issuer
        self._verification_keys = dict(verification_keys or {})
        self._verification_keys[kid] = public_key_pem

    def _public_key_for(self, token: str) -> str:
        kid = jwt.get_unverified_header(token).get("kid")
        return self._verification_keys.get(kid, self._public_key_pem)

    def _sign(self, payload: dict[str, Any]) -> str:
        return jwt.encode(
            payload,
            self._private_key_pem,
            algorithm="RS256",
            headers={"kid": self._kid},
        )

    def create_access_token(self, claims: AccessTokenClaims) -> str:
        """Create a signed access token; ``sub`` is omitted for client grants."""
        now = datetime.now(UTC)
        payload: dict[str, Any] = {
            "iss": self._issuer,
            "aud": claims.client_id,
            "client_id": claims.client_id,
            "scope": claims.scope,
            "permissions": claims.permissions,
            "jti": claims.jti,
            "token_use": TOKEN_USE_ACCESS,
            "iat": now,
            "exp": now + timedelta(seconds=claims.ttl_seconds),
        }
        if claims.sub is not None:
            payload["sub"] = claims.sub
        return self._sign(payload)

    def create_refresh_token(self, claims: RefreshTokenClaims) -> str:
        """Create a signed refresh token bound to a user and client."""
        now = datetime.now(UTC)
        return self._sign(
            {
                "iss": self._issuer,
                "sub": claims.sub,
                "aud": claims.client_id,
                "client_id": claims.client_id,
                "scope": claims.scope,
                "jti": claims.jti,
                "token_use": TOKEN_USE_REFRESH,
                "iat": now,
                "exp": now + timedelta(seconds=claims.ttl_seconds),
            }
        )

    def create_id_token(self, claims: IdTokenClaims) -> str:
        """Create a signed RS256 id_token per OIDC Core 1.0."""
        now = datetime.now(UTC)
        payload: dict[str, Any] = {
            "iss": self._issuer,
            "sub": claims.sub,
            "aud": claims.aud,
            "exp": now + timedelta(seconds=claims.ttl_seconds),
            "iat": now,
            "email": claims.email,
        }
        if claims.name is not None:
            payload["name"] = claims.name
        if claims.nonce is not None:
            payload["nonce"] = claims.nonce
        return self._sign(payload)

    def verify_token(
        self,
        token: str,
        audience: str | None = None,
        *,
        verify_exp: bool = True,
    ) -> DecodedToken:
        """Verify and decode an RS256 JWT token."""
        opts: Options = {}
        if audience is None:
            opts["verify_aud"] = False
        if not verify_exp:
            opts["verify_exp"] = False
        raw = jwt.decode(
            token,
            self._public_key_for(token),
            algorithms=["RS256"],
            issuer=self._issuer,
            audience=audience,
            options=opts,
        )
        return DecodedToken.model_validate(raw)
