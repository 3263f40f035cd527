"""Access/refresh token issuance, rotation, introspection, and revocation."""

import logging
import secrets
from datetime import UTC, datetime, timedelta

import jwt
import uuid_utils
from sqlalchemy import exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from authz.core.errors import Err, Ok, Result, unauthorized, wrap_store_errors
from authz.core.settings import BLACKLIST_GRACE_DEFAULT
from authz.crypto.hashing import hash_token
from authz.crypto.jwt_manager import JWTManager
from authz.crypto.types import (
    TOKEN_USE_REFRESH,
    AccessTokenClaims,
    DecodedToken,
    IdTokenClaims,
    RefreshTokenClaims,
)
from authz.db.base import new_row_id
from authz.db.models_oauth import RefreshTokenEntity, TokenBlacklistEntity
from authz.db.repo_user import get_active_user, get_user_by_id
from authz.db.unit_of_work import UnitOfWork
from authz.oauth.client_store import ClientStore
from authz.oauth.scopes import enforce_subset, parse_scope
from authz.oauth.types import GRANT_REFRESH_TOKEN, Client, TokenResponse
from authz.rbac.resolver import PermissionResolver

logger = logging.getLogger(__name__)

REVOCATION_REASON = "revoked by client"


def new_jti() -> str:
    """Generate a unique token identifier."""
    return str(uuid_utils.uuid4())


def _is_expired(expiry: datetime) -> bool:
    now = datetime.now(UTC)
    if expiry.tzinfo is None:
        now = now.replace(tzinfo=None)
    return now >= expiry


class TokenService:
    """Issues and manages tokens for one unit of work.

    Access tokens are stateless RS256 JWTs. Refresh tokens are JWTs too, but
    each one is backed by a ``refresh_tokens`` row holding its SHA-256 digest
    so it can be rotated and revoked.
    """

    def __init__(
        self,
        uow: UnitOfWork,
        jwt_mgr: JWTManager,
        clients: ClientStore,
        resolver: PermissionResolver,
        *,
        blacklist_grace_seconds: int = BLACKLIST_GRACE_DEFAULT,
    ) -> None:
        self._uow = uow
        self._jwt = jwt_mgr
        self._clients = clients
        self._resolver = resolver
        self._blacklist_grace = timedelta(seconds=blacklist_grace_seconds)

    def _decode(self, token: str, *, verify_exp: bool = True) -> DecodedToken | None:
        try:
            return self._jwt.verify_token(token, verify_exp=verify_exp)
        except (jwt.PyJWTError, ValueError):
            return None

    async def _store_refresh_token(
        self, session: AsyncSession, entity: RefreshTokenEntity
    ) -> None:
        session.add(entity)
        await session.flush()

    async def _issue(
        self,
        client: Client,
        user_id: str | None,
        scope: str,
        permissions: list[str],
        nonce: str | None,
        previous_token_id: str | None = None,
    ) -> TokenResponse:
        access_token = self._jwt.create_access_token(
            AccessTokenClaims(
                sub=user_id,
                client_id=client.client_id,
                scope=scope,
                permissions=permissions,
                jti=new_jti(),
                ttl_seconds=client.access_token_ttl,
            )
        )
        if user_id is None:
            return TokenResponse(
                access_token=access_token,
                expires_in=client.access_token_ttl,
                scope=scope,
            )

        session = self._uow.session
        refresh_jti = new_jti()
        refresh_token = self._jwt.create_refresh_token(
            RefreshTokenClaims(
                sub=user_id,
                client_id=client.client_id,
                scope=scope,
                jti=refresh_jti,
                ttl_seconds=client.refresh_token_ttl,
            )
        )
        await self._store_refresh_token(
            session,
            RefreshTokenEntity(
                id=new_row_id(),
                jti=refresh_jti,
                token_hash=hash_token(refresh_token),
                user_id=user_id,
                client_id=client.id,
                scope=scope,
                expires_at=datetime.now(UTC)
                + timedelta(seconds=client.refresh_token_ttl),
                is_revoked=False,
                previous_token_id=previous_token_id,
            ),
        )

        id_token = None
        if "openid" in parse_scope(scope):
            user = await get_user_by_id(session, user_id)
            if user is not None:
                id_token = self._jwt.create_id_token(
                    IdTokenClaims(
                        sub=user_id,
                        aud=client.client_id,
                        email=user.email,
                        name=user.name,
                        nonce=nonce,
                        ttl_seconds=client.access_token_ttl,
                    )
                )

        return TokenResponse(
            access_token=access_token,
            expires_in=client.access_token_ttl,
            refresh_token=refresh_token,
            id_token=id_token,
            scope=scope,
        )

    @wrap_store_errors
    async def issue_tokens(
        self,
        client: Client,
        user_id: str | None,
        scope: str,
        permissions: list[str],
        nonce: str | None = None,
    ) -> Result[TokenResponse]:
        """Issue an access token, plus refresh and id tokens when a user is present."""
        async with self._uow.atomic():
            pair = await self._issue(client, user_id, scope, permissions, nonce)
        logger.info(
            "Issued tokens for client %s user %s scope=%r",
            client.client_id,
            user_id,
            scope,
        )
        return Ok(pair)

    @wrap_store_errors
    async def refresh_token(
        self,
        raw: str,
        *,
        client: Client | None = None,
        requested_scope: str | None = None,
    ) -> Result[TokenResponse]:
        """Redeem a refresh token for a new pair, revoking it in the same transaction.

        A refresh token can be redeemed once. A second presentation of the
        same token is rejected and logged as a replay.
        """
        claims = self._decode(raw)
        if claims is None or claims.token_use != TOKEN_USE_REFRESH or not claims.sub:
            return unauthorized("invalid refresh token", "invalid_grant")

        async with self._uow.atomic() as session:
            stmt = (
                select(RefreshTokenEntity)
                .where(RefreshTokenEntity.jti == claims.jti)
                .execution_options(populate_existing=True)
            )
            stored = (await session.execute(stmt)).scalar_one_or_none()
            if stored is None or not secrets.compare_digest(
                stored.token_hash, hash_token(raw)
            ):
                return unauthorized("invalid refresh token", "invalid_grant")
            if stored.is_revoked or await self._is_blacklisted(claims.jti):
                logger.warning(
                    "Revoked refresh token presented: jti=%s client=%s",
                    claims.jti,
                    claims.client_id,
                )
                return unauthorized("refresh token revoked", "invalid_grant")
            if _is_expired(stored.expires_at):
                return unauthorized("refresh token expired", "invalid_grant")

            if client is None:
                found = await self._clients.find(claims.client_id)
                if isinstance(found, Err):
                    return unauthorized("refresh token client unknown", "invalid_grant")
                client = found.value
            if not client.is_active:
                return unauthorized("client is inactive", "invalid_client")
            if client.client_id != claims.client_id or client.id != stored.client_id:
                logger.warning(
                    "Client %s presented a refresh token issued to %s",
                    client.client_id,
                    claims.client_id,
                )
                return unauthorized(
                    "refresh token was issued to another client", "invalid_grant"
                )
            if GRANT_REFRESH_TOKEN not in client.grant_types:
                return unauthorized(
                    "refresh grant not allowed for client", "unauthorized_client"
                )

            granted = enforce_subset(stored.scope, requested_scope)
            if isinstance(granted, Err):
                return granted
            if await get_active_user(session, stored.user_id) is None:
                return unauthorized("user is inactive", "invalid_grant")
            permissions = await self._resolver.get_user_permissions(stored.user_id)
            if isinstance(permissions, Err):
                return permissions

            revoked = await session.execute(
                update(RefreshTokenEntity)
                .where(
                    RefreshTokenEntity.id == stored.id,
                    RefreshTokenEntity.is_revoked.is_(False),
                )
                .values(is_revoked=True, revoked_at=datetime.now(UTC))
                .execution_options(synchronize_session=False)
            )
            if revoked.rowcount != 1:
                logger.warning("Concurrent redemption of refresh token jti=%s", claims.jti)
                return unauthorized("refresh token revoked", "invalid_grant")
            pair = await self._issue(
                client,
                stored.user_id,
                granted.value,
                permissions.value,
                None,
                previous_token_id=stored.id,
            )
        logger.info("Rotated refresh token for client %s", client.client_id)
        return Ok(pair)

    async def _is_blacklisted(self, jti: str) -> bool:
        stmt = select(
            exists().where(
                TokenBlacklistEntity.jti == jti,
                TokenBlacklistEntity.expires_at > datetime.now(UTC),
            )
        )
        return bool((await self._uow.session.execute(stmt)).scalar())

    @wrap_store_errors
    async def introspect_token(self, token: str) -> Result[DecodedToken]:
        """Return the claims of an active token."""
        claims = self._decode(token)
        if claims is None or not claims.jti:
            return unauthorized("token is not active")
        if await self._is_blacklisted(claims.jti):
            return unauthorized("token is revoked")
        if claims.token_use == TOKEN_USE_REFRESH:
            stmt = select(RefreshTokenEntity.is_revoked).where(
                RefreshTokenEntity.jti == claims.jti
            )
            if (await self._uow.session.execute(stmt)).scalar_one_or_none():
                return unauthorized("token is revoked")
        return Ok(claims)

    @wrap_store_errors
    async def revoke_token(
        self,
        token: str,
        token_type_hint: str | None = None,
        *,
        client_id: str | None = None,
    ) -> Result[None]:
        """Revoke a token (RFC 7009). Repeating the call, or passing junk, succeeds.

        ``token_type_hint`` is advisory only; the token's own ``token_use``
        claim decides whether its refresh row is revoked as well.
        """
        claims = self._decode(token, verify_exp=False)
        if claims is None or not claims.jti:
            logger.warning("Ignoring revocation of an unparseable token")
            return Ok(None)
        if client_id is not None and claims.client_id != client_id:
            logger.warning(
                "Client %s attempted to revoke a token issued to %s",
                client_id,
                claims.client_id,
            )
            return Ok(None)

        now = datetime.now(UTC)
        token_expiry = datetime.fromtimestamp(claims.exp, UTC) if claims.exp else now
        token_type = (
            "refresh_token" if claims.token_use == TOKEN_USE_REFRESH else "access_token"
        )
        async with self._uow.atomic() as session:
            if not await self._is_blacklisted(claims.jti):
                session.add(
                    TokenBlacklistEntity(
                        id=new_row_id(),
                        jti=claims.jti,
                        token_type=token_type,
                        user_id=claims.sub,
                        client_id=claims.client_id,
                        expires_at=max(token_expiry, now) + self._blacklist_grace,
                        reason=REVOCATION_REASON,
                    )
                )
            if claims.token_use == TOKEN_USE_REFRESH:
                await session.execute(
                    update(RefreshTokenEntity)
                    .where(
                        RefreshTokenEntity.jti == claims.jti,
                        RefreshTokenEntity.is_revoked.is_(False),
                    )
                    .values(is_revoked=True, revoked_at=now)
                    .execution_options(synchronize_session=False)
                )
        logger.info(
            "Revoked %s jti=%s client=%s hint=%s",
            token_type,
            claims.jti,
            claims.client_id,
            token_type_hint,
        )
        return Ok(None)

    @wrap_store_errors
    async def is_token_revoked(self, jti: str) -> Result[bool]:
        """True while a non-expired blacklist entry exists for ``jti``."""
        return Ok(await self._is_blacklisted(jti))
