"""Authorization code issuance and single-use consumption."""

import logging
import secrets
from datetime import UTC, datetime, timedelta

from sqlalchemy import select, update

from authz.core.errors import (
    Err,
    Ok,
    Result,
    unauthorized,
    validation_error,
    wrap_store_errors,
)
from authz.core.settings import AUTH_CODE_TTL_DEFAULT
from authz.db.models_oauth import AuthorizationCodeEntity
from authz.db.unit_of_work import UnitOfWork
from authz.oauth.client_store import ClientStore
from authz.oauth.pkce import METHOD_S256, is_well_formed, supported_methods
from authz.oauth.scopes import validate_nonce, validate_redirect_uri, validate_requested
from authz.oauth.types import GRANT_AUTHORIZATION_CODE, AuthorizationCode, AuthorizeRequest

logger = logging.getLogger(__name__)


def generate_code() -> str:
    """Generate a cryptographically random authorization code."""
    return secrets.token_urlsafe(32)


class AuthorizationCodeStore:
    """Issues authorization codes and redeems each of them at most once."""

    def __init__(
        self,
        uow: UnitOfWork,
        clients: ClientStore,
        *,
        ttl_seconds: int = AUTH_CODE_TTL_DEFAULT,
        allow_plain_pkce: bool = False,
    ) -> None:
        self._uow = uow
        self._clients = clients
        self._ttl_seconds = ttl_seconds
        self._allow_plain_pkce = allow_plain_pkce

    def _check_challenge(
        self, request: AuthorizeRequest, *, is_public: bool, require_pkce: bool
    ) -> Err | None:
        if not request.code_challenge:
            if is_public or require_pkce:
                return validation_error("code_challenge is required")
            return None
        method = request.code_challenge_method or METHOD_S256
        if method not in supported_methods(self._allow_plain_pkce):
            return validation_error(f"unsupported code_challenge_method: {method}")
        if is_public and not is_well_formed(request.code_challenge):
            return validation_error("code_challenge is malformed")
        return None

    @wrap_store_errors
    async def create(self, request: AuthorizeRequest, user_id: str) -> Result[str]:
        """Validate an authorization request and persist a fresh code for it."""
        found = await self._clients.find(request.client_id)
        if isinstance(found, Err):
            return found
        client = found.value
        if not client.is_active:
            return unauthorized("client is inactive", "invalid_client")
        if "code" not in client.response_types:
            return validation_error(
                "response_type not allowed for client", "unsupported_response_type"
            )
        if GRANT_AUTHORIZATION_CODE not in client.grant_types:
            return validation_error("grant not allowed for client", "unauthorized_client")

        checks = (
            validate_redirect_uri(request.redirect_uri, client.redirect_uris),
            validate_requested(request.scope, client.allowed_scopes),
            validate_nonce(request.nonce),
        )
        for check in checks:
            if isinstance(check, Err):
                return check
        challenge_error = self._check_challenge(
            request, is_public=client.is_public, require_pkce=client.require_pkce
        )
        if challenge_error is not None:
            return challenge_error

        code = generate_code()
        entity = AuthorizationCodeEntity(
            code=code,
            client_id=client.id,
            user_id=user_id,
            redirect_uri=request.redirect_uri,
            scope=request.scope,
            nonce=request.nonce,
            code_challenge=request.code_challenge or None,
            code_challenge_method=(
                (request.code_challenge_method or METHOD_S256)
                if request.code_challenge
                else None
            ),
            expires_at=datetime.now(UTC) + timedelta(seconds=self._ttl_seconds),
            is_used=False,
        )
        async with self._uow.atomic() as session:
            session.add(entity)
        logger.debug("Issued authorization code for client %s", client.client_id)
        return Ok(code)

    @wrap_store_errors
    async def consume(self, code: str) -> Result[AuthorizationCode]:
        """Mark a code used and return it; a code can be consumed exactly once.

        The claim is a conditional UPDATE, so concurrent redemptions of the
        same code race inside the database and only one of them matches.
        The row is read afterwards only to tell the caller why it failed.
        """
        if not code:
            return validation_error("invalid code", "invalid_grant")
        async with self._uow.atomic() as session:
            now = datetime.now(UTC)
            claim = await session.execute(
                update(AuthorizationCodeEntity)
                .where(
                    AuthorizationCodeEntity.code == code,
                    AuthorizationCodeEntity.is_used.is_(False),
                    AuthorizationCodeEntity.expires_at > now,
                )
                .values(is_used=True)
                .execution_options(synchronize_session=False)
            )
            stmt = (
                select(AuthorizationCodeEntity)
                .where(AuthorizationCodeEntity.code == code)
                .execution_options(populate_existing=True)
            )
            entity = (await session.execute(stmt)).scalar_one_or_none()

        if entity is None:
            logger.warning("Attempt to redeem unknown authorization code")
            return validation_error("invalid code", "invalid_grant")
        if claim.rowcount == 1:
            return Ok(AuthorizationCode.model_validate(entity))
        if entity.is_used:
            logger.warning(
                "Authorization code replay for client %s user %s",
                entity.client_id,
                entity.user_id,
            )
            return validation_error("code already used", "invalid_grant")
        logger.info("Expired authorization code presented by client %s", entity.client_id)
        return validation_error("code expired", "invalid_grant")
