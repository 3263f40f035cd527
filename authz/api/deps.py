"""FastAPI dependencies that wire services to the request's unit of work."""

from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from authz.core.settings import AuthSettings
from authz.crypto.jwt_manager import JWTManager
from authz.crypto.keys import decrypt_private_key
from authz.db.engine import get_session
from authz.db.repo_keys import get_active_key, get_verification_keys
from authz.db.unit_of_work import UnitOfWork
from authz.oauth.auth_code import AuthorizationCodeStore
from authz.oauth.client_store import SqlClientStore
from authz.oauth.grants import GrantHandler
from authz.oauth.token_service import TokenService
from authz.rbac.cache import PermissionCache
from authz.rbac.resolver import SqlPermissionResolver


def load_settings() -> AuthSettings:
    return AuthSettings()


SettingsDep = Annotated[AuthSettings, Depends(load_settings)]


async def get_unit_of_work(
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: SettingsDep,
) -> AsyncIterator[UnitOfWork]:
    """Request-scoped unit of work; handlers commit explicitly before responding."""
    uow = UnitOfWork(session, timeout=settings.store_timeout_seconds)
    try:
        yield uow
    except Exception:
        await uow.rollback()
        raise


UnitOfWorkDep = Annotated[UnitOfWork, Depends(get_unit_of_work)]


def get_permission_cache(request: Request) -> PermissionCache:
    """The application-wide permission cache."""
    return request.app.state.permission_cache


def get_authenticated_user_id(request: Request) -> str | None:
    """User id resolved by the session layer in front of this service."""
    return getattr(request.state, "user_id", None)


def get_client_store(uow: UnitOfWorkDep) -> SqlClientStore:
    return SqlClientStore(uow)


ClientStoreDep = Annotated[SqlClientStore, Depends(get_client_store)]


def get_permission_resolver(
    uow: UnitOfWorkDep,
    cache: Annotated[PermissionCache, Depends(get_permission_cache)],
    settings: SettingsDep,
) -> SqlPermissionResolver:
    return SqlPermissionResolver(uow, cache, cache_ttl=settings.permission_cache_ttl)


ResolverDep = Annotated[SqlPermissionResolver, Depends(get_permission_resolver)]


def get_code_store(
    uow: UnitOfWorkDep, clients: ClientStoreDep, settings: SettingsDep
) -> AuthorizationCodeStore:
    return AuthorizationCodeStore(
        uow,
        clients,
        ttl_seconds=settings.auth_code_ttl,
        allow_plain_pkce=settings.allow_plain_pkce,
    )


CodeStoreDep = Annotated[AuthorizationCodeStore, Depends(get_code_store)]


async def get_jwt_manager(
    uow: UnitOfWorkDep, settings: SettingsDep
) -> JWTManager | None:
    """Sign with the active key and verify against every stored key."""
    key = await get_active_key(uow.session)
    if key is None:
        return None
    private_pem = decrypt_private_key(
        key.private_key_pem, settings.signing_key_encryption_key
    )
    return JWTManager(
        private_key_pem=private_pem,
        public_key_pem=key.public_key_pem,
        kid=key.kid,
        issuer=settings.issuer_url,
        verification_keys=await get_verification_keys(uow.session),
    )


def get_token_service(
    uow: UnitOfWorkDep,
    jwt_mgr: Annotated[JWTManager | None, Depends(get_jwt_manager)],
    clients: ClientStoreDep,
    resolver: ResolverDep,
    settings: SettingsDep,
) -> TokenService | None:
    """Token service, or None when no signing key has been provisioned."""
    if jwt_mgr is None:
        return None
    return TokenService(
        uow,
        jwt_mgr,
        clients,
        resolver,
        blacklist_grace_seconds=settings.blacklist_grace_seconds,
    )


TokenServiceDep = Annotated[TokenService | None, Depends(get_token_service)]


def get_grant_handler(
    uow: UnitOfWorkDep,
    codes: CodeStoreDep,
    tokens: TokenServiceDep,
    resolver: ResolverDep,
    settings: SettingsDep,
) -> GrantHandler | None:
    if tokens is None:
        return None
    return GrantHandler(
        uow, codes, tokens, resolver, allow_plain_pkce=settings.allow_plain_pkce
    )


GrantHandlerDep = Annotated[GrantHandler | None, Depends(get_grant_handler)]
