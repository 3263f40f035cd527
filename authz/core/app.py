"""FastAPI application factory for the authz token service."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from authz.api.errors import STORE_FAILURES, store_failure_handler
from authz.core.log_config import configure_logging
from authz.core.settings import AuthSettings
from authz.db.engine import dispose_engine
from authz.oauth.routes_authorize import router as authorize_router
from authz.oauth.routes_introspect import router as introspect_router
from authz.oauth.routes_revoke import router as revoke_router
from authz.oauth.routes_token import router as token_router
from authz.oauth.routes_userinfo import router as userinfo_router
from authz.rbac.cache import InMemoryPermissionCache, PermissionCache

logger = logging.getLogger(__name__)


def create_app(permission_cache: PermissionCache | None = None) -> FastAPI:
    """Build and configure the FastAPI application."""
    settings = AuthSettings()
    configure_logging(settings.log_level)
    cache = permission_cache
    if cache is None:
        cache = InMemoryPermissionCache(settings.permission_cache_ttl)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        logger.info("authz starting, issuer=%s", settings.issuer_url)
        yield
        if isinstance(cache, InMemoryPermissionCache):
            await cache.clear()
        await dispose_engine()

    app = FastAPI(
        title="authz OAuth 2.1 Authorization Server",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.permission_cache = cache

    origins = settings.get_cors_origin_list()
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["GET", "POST"],
            allow_headers=["Authorization", "Content-Type"],
        )

    for exc_type in STORE_FAILURES:
        app.add_exception_handler(exc_type, store_failure_handler)

    app.include_router(authorize_router)
    app.include_router(token_router)
    app.include_router(introspect_router)
    app.include_router(revoke_router)
    app.include_router(userinfo_router)

    return app
