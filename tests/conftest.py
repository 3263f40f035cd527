"""Shared test fixtures for authz."""

from collections.abc import AsyncIterator

import pytest
from cryptography.fernet import Fernet
from fastapi import Request
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from authz.api.deps import get_authenticated_user_id
from authz.core.app import create_app
from authz.crypto.jwt_manager import JWTManager
from authz.crypto.keys import encrypt_private_key, generate_rsa_keypair
from authz.db.base import BaseEntity
from authz.db.engine import get_session
from authz.db.models_keys import SigningKeyEntity
from authz.db.unit_of_work import UnitOfWork
from authz.rbac.cache import InMemoryPermissionCache

ISSUER = "http://localhost:8000"
FERNET_KEY = Fernet.generate_key().decode()
TEST_USER_HEADER = "X-Test-User"


class RecordingPermissionCache(InMemoryPermissionCache):
    """In-memory cache that records every invalidation."""

    def __init__(self) -> None:
        super().__init__()
        self.invalidated: list[str] = []

    async def invalidate(self, user_id: str) -> None:
        self.invalidated.append(user_id)
        await super().invalidate(user_id)


@pytest.fixture(autouse=True)
def _auth_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Issuer and key-encryption settings every app instance reads."""
    monkeypatch.setenv("AUTH_ISSUER_URL", ISSUER)
    monkeypatch.setenv("AUTH_SIGNING_KEY_ENCRYPTION_KEY", FERNET_KEY)


@pytest.fixture
async def memory_engine() -> AsyncIterator[AsyncEngine]:
    """Fresh in-memory SQLite database with every authz table created."""
    engine = create_async_engine("sqlite+aiosqlite://")
    async with engine.begin() as conn:
        await conn.run_sync(BaseEntity.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(memory_engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    """Session shared by a test and any app it drives."""
    sessions = async_sessionmaker(memory_engine, expire_on_commit=False)
    async with sessions() as session:
        yield session


@pytest.fixture
def uow(db_session: AsyncSession) -> UnitOfWork:
    """Unit of work over the test session."""
    return UnitOfWork(db_session, timeout=5.0)


@pytest.fixture
def permission_cache() -> RecordingPermissionCache:
    """Permission cache that remembers invalidations."""
    return RecordingPermissionCache()


@pytest.fixture
async def signing_key(db_session: AsyncSession) -> SigningKeyEntity:
    """The active RS256 key every issued token is signed with."""
    pair = generate_rsa_keypair()
    stored = SigningKeyEntity(
        kid=pair.kid,
        algorithm="RS256",
        private_key_pem=encrypt_private_key(pair.private_key_pem, FERNET_KEY),
        public_key_pem=pair.public_key_pem,
        is_active=True,
    )
    db_session.add(stored)
    await db_session.flush()
    return stored


@pytest.fixture
def jwt_mgr() -> JWTManager:
    """JWTManager with a fresh keypair that is not stored in the database."""
    pair = generate_rsa_keypair()
    return JWTManager(pair.private_key_pem, pair.public_key_pem, pair.kid, ISSUER)


@pytest.fixture
async def client(
    db_session: AsyncSession, permission_cache: RecordingPermissionCache
) -> AsyncIterator[AsyncClient]:
    """Create an httpx test client bound to the test session.

    The signed-in user is taken from the ``X-Test-User`` header in place of
    the session layer that normally sits in front of the service.
    """
    app = create_app(permission_cache=permission_cache)

    async def _override_session() -> AsyncIterator[AsyncSession]:
        yield db_session

    def _user_from_header(request: Request) -> str | None:
        return request.headers.get(TEST_USER_HEADER)

    app.dependency_overrides[get_session] = _override_session
    app.dependency_overrides[get_authenticated_user_id] = _user_from_header

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://authz.test") as http:
        yield http
