"""OAuth client lookup, authentication, and registration."""

import asyncio
import logging
from typing import Protocol

import uuid_utils
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from authz.core.errors import (
    Err,
    ErrorKind,
    Ok,
    Result,
    conflict,
    not_found,
    unauthorized,
    validation_error,
    wrap_store_errors,
)
from authz.core.settings import LIST_LIMIT_DEFAULT, LIST_LIMIT_MAX
from authz.crypto.hashing import generate_client_secret, hash_secret, verify_secret
from authz.db.base import new_row_id
from authz.db.models_oauth import OAuthClientEntity
from authz.db.unit_of_work import UnitOfWork
from authz.oauth.types import Client, ClientRegistration, ClientType, ClientUpdate

logger = logging.getLogger(__name__)


class ClientStore(Protocol):
    """Read side of client management used by the OAuth flows."""

    async def find(self, client_id: str) -> Result[Client]: ...

    async def authenticate(
        self, client_id: str, client_secret: str | None
    ) -> Result[Client]: ...


class SqlClientStore:
    """``ClientStore`` backed by the ``oauth_clients`` table."""

    def __init__(self, uow: UnitOfWork) -> None:
        self._uow = uow

    async def _get_entity(self, client_id: str) -> OAuthClientEntity | None:
        stmt = select(OAuthClientEntity).where(OAuthClientEntity.client_id == client_id)
        result = await self._uow.session.execute(stmt)
        return result.scalar_one_or_none()

    @wrap_store_errors
    async def find(self, client_id: str) -> Result[Client]:
        """Look up a client by its public ``client_id``."""
        entity = await self._get_entity(client_id)
        if entity is None:
            return not_found("client not found", "invalid_client")
        return Ok(Client.model_validate(entity))

    @wrap_store_errors
    async def authenticate(
        self, client_id: str, client_secret: str | None
    ) -> Result[Client]:
        """Authenticate a client; public clients need no secret."""
        entity = await self._get_entity(client_id)
        if entity is None:
            return not_found("client not found", "invalid_client")
        client = Client.model_validate(entity)
        if not client.is_active:
            logger.info("Rejected inactive client %s", client_id)
            return unauthorized("client is inactive", "invalid_client")
        if client.is_public:
            return Ok(client)
        if not client_secret:
            return unauthorized("client secret required", "invalid_client")
        if not entity.client_secret_hash:
            logger.error("Confidential client %s has no stored secret", client_id)
            return Err(ErrorKind.INTERNAL, "client secret missing")
        valid = await asyncio.to_thread(
            verify_secret, client_secret, entity.client_secret_hash
        )
        if not valid:
            logger.warning("Invalid secret presented for client %s", client_id)
            return unauthorized("invalid client secret", "invalid_client")
        return Ok(client)

    @wrap_store_errors
    async def create_client(
        self, registration: ClientRegistration
    ) -> Result[tuple[Client, str | None]]:
        """Register a client; returns it with the plain secret (confidential only)."""
        try:
            client_type = ClientType(registration.client_type.upper())
        except ValueError:
            return validation_error(
                f"invalid client type: {registration.client_type}"
            )

        plain_secret: str | None = None
        secret_hash: str | None = None
        if client_type == ClientType.CONFIDENTIAL:
            plain_secret = generate_client_secret()
            secret_hash = await asyncio.to_thread(hash_secret, plain_secret)

        entity = OAuthClientEntity(
            id=new_row_id(),
            client_id=str(uuid_utils.uuid4()),
            client_secret_hash=secret_hash,
            client_name=registration.client_name,
            client_type=client_type.value,
            redirect_uris=registration.redirect_uris,
            grant_types=registration.grant_types,
            response_types=registration.response_types,
            allowed_scopes=registration.allowed_scopes,
            client_permissions=registration.client_permissions,
            access_token_ttl=registration.access_token_ttl,
            refresh_token_ttl=registration.refresh_token_ttl,
            require_pkce=registration.require_pkce,
            require_consent=registration.require_consent,
            is_active=True,
        )
        try:
            async with self._uow.atomic() as session:
                session.add(entity)
        except IntegrityError:
            return conflict("client already exists")
        logger.info("Registered %s client %s", client_type.value, entity.client_id)
        return Ok((Client.model_validate(entity), plain_secret))

    @wrap_store_errors
    async def list_clients(
        self, limit: int = LIST_LIMIT_DEFAULT, offset: int = 0
    ) -> Result[list[Client]]:
        """Page through registered clients, newest first."""
        if limit <= 0 or offset < 0:
            return validation_error("limit must be positive and offset non-negative")
        stmt = (
            select(OAuthClientEntity)
            .order_by(OAuthClientEntity.created_at.desc(), OAuthClientEntity.id.desc())
            .limit(min(limit, LIST_LIMIT_MAX))
            .offset(offset)
        )
        result = await self._uow.session.execute(stmt)
        return Ok([Client.model_validate(e) for e in result.scalars()])

    @wrap_store_errors
    async def update_client(self, client_id: str, changes: ClientUpdate) -> Result[Client]:
        """Apply the fields set on ``changes``; everything else keeps its value."""
        values = changes.model_dump(exclude_none=True)
        name = values.get("client_name")
        if name is not None and not name.strip():
            return validation_error("client name must not be empty")
        for ttl_field in ("access_token_ttl", "refresh_token_ttl"):
            if values.get(ttl_field, 1) <= 0:
                return validation_error(f"{ttl_field} must be positive")

        async with self._uow.atomic() as session:
            stmt = (
                select(OAuthClientEntity)
                .where(OAuthClientEntity.client_id == client_id)
                .with_for_update()
            )
            entity = (await session.execute(stmt)).scalar_one_or_none()
            if entity is None:
                return not_found("client not found", "invalid_client")
            for field, value in values.items():
                setattr(entity, field, value)
        logger.info("Updated client %s fields=%s", client_id, sorted(values))
        return Ok(Client.model_validate(entity))

    @wrap_store_errors
    async def delete_client(self, client_id: str) -> Result[None]:
        """Deactivate a client; its rows stay so issued tokens remain traceable."""
        async with self._uow.atomic():
            entity = await self._get_entity(client_id)
            if entity is None:
                return not_found("client not found", "invalid_client")
            entity.is_active = False
        logger.info("Deactivated client %s", client_id)
        return Ok(None)
