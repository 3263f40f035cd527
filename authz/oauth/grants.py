"""Token endpoint grant handling (authorization_code, refresh_token, client_credentials)."""

import logging

from authz.core.errors import Err, Result, unauthorized, validation_error
from authz.db.repo_user import get_active_user
from authz.db.unit_of_work import UnitOfWork
from authz.oauth.auth_code import AuthorizationCodeStore
from authz.oauth.pkce import verify_pkce
from authz.oauth.scopes import enforce_subset, parse_scope, validate_requested
from authz.oauth.token_service import TokenService
from authz.oauth.types import (
    GRANT_AUTHORIZATION_CODE,
    GRANT_CLIENT_CREDENTIALS,
    GRANT_REFRESH_TOKEN,
    Client,
    TokenResponse,
)
from authz.rbac.resolver import PermissionResolver

logger = logging.getLogger(__name__)


def _grant_not_allowed(client: Client, grant_type: str) -> Err | None:
    if grant_type not in client.grant_types:
        logger.info("Client %s attempted disallowed grant %s", client.client_id, grant_type)
        return validation_error(
            f"grant {grant_type} not allowed for client", "unauthorized_client"
        )
    return None


class GrantHandler:
    """Runs each supported grant for an already-authenticated client."""

    def __init__(
        self,
        uow: UnitOfWork,
        codes: AuthorizationCodeStore,
        tokens: TokenService,
        resolver: PermissionResolver,
        *,
        allow_plain_pkce: bool = False,
    ) -> None:
        self._uow = uow
        self._codes = codes
        self._tokens = tokens
        self._resolver = resolver
        self._allow_plain_pkce = allow_plain_pkce

    async def authorization_code(
        self,
        client: Client,
        *,
        code: str | None,
        code_verifier: str | None,
        redirect_uri: str | None,
        scope: str | None = None,
    ) -> Result[TokenResponse]:
        """Exchange an authorization code (with its PKCE verifier) for tokens."""
        denied = _grant_not_allowed(client, GRANT_AUTHORIZATION_CODE)
        if denied is not None:
            return denied
        if not code or not redirect_uri:
            return validation_error("code and redirect_uri are required")

        consumed = await self._codes.consume(code)
        if isinstance(consumed, Err):
            return consumed
        grant = consumed.value

        if grant.client_id != client.id:
            logger.warning(
                "Client %s presented a code issued to another client", client.client_id
            )
            return validation_error("code was issued to another client", "invalid_grant")
        if grant.redirect_uri != redirect_uri:
            return validation_error("redirect_uri mismatch", "invalid_grant")
        if grant.code_challenge:
            if not code_verifier:
                return validation_error("code_verifier is required")
            checked = verify_pkce(
                code_verifier,
                grant.code_challenge,
                grant.code_challenge_method,
                allow_plain=self._allow_plain_pkce,
            )
            if isinstance(checked, Err):
                logger.warning("PKCE verification failed for client %s", client.client_id)
                return checked

        granted = enforce_subset(grant.scope, scope)
        if isinstance(granted, Err):
            return granted
        if await get_active_user(self._uow.session, grant.user_id) is None:
            return unauthorized("user is inactive", "invalid_grant")
        permissions = await self._resolver.get_user_permissions(grant.user_id)
        if isinstance(permissions, Err):
            return permissions
        return await self._tokens.issue_tokens(
            client, grant.user_id, granted.value, permissions.value, grant.nonce
        )

    async def refresh(
        self,
        client: Client,
        *,
        refresh_token: str | None,
        scope: str | None = None,
    ) -> Result[TokenResponse]:
        """Rotate a refresh token."""
        denied = _grant_not_allowed(client, GRANT_REFRESH_TOKEN)
        if denied is not None:
            return denied
        if not refresh_token:
            return validation_error("refresh_token is required")
        return await self._tokens.refresh_token(
            refresh_token, client=client, requested_scope=scope
        )

    async def client_credentials(
        self, client: Client, *, scope: str | None = None
    ) -> Result[TokenResponse]:
        """Issue a user-less access token carrying the client's own permissions."""
        denied = _grant_not_allowed(client, GRANT_CLIENT_CREDENTIALS)
        if denied is not None:
            return denied
        if client.is_public:
            return validation_error(
                "client_credentials requires a confidential client", "unauthorized_client"
            )
        requested = scope if parse_scope(scope) else " ".join(client.allowed_scopes)
        checked = validate_requested(requested, client.allowed_scopes)
        if isinstance(checked, Err):
            return checked
        return await self._tokens.issue_tokens(
            client, None, " ".join(checked.value), list(client.client_permissions)
        )


def unsupported_grant(grant_type: str) -> Err:
    """Error for a grant type this server does not implement."""
    return validation_error(
        f"unsupported grant_type: {grant_type}", "unsupported_grant_type"
    )

