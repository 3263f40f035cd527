"""Database operations for signing key management."""

import logging
from datetime import UTC, datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from authz.crypto.keys import encrypt_private_key, generate_rsa_keypair
from authz.db.models_keys import SigningKeyEntity

logger = logging.getLogger(__name__)


async def get_active_key(
    session: AsyncSession,
) -> SigningKeyEntity | None:
    """Return the currently active signing key."""
    stmt = select(SigningKeyEntity).where(SigningKeyEntity.is_active.is_(True))
    result = await session.execute(stmt)
    return result.scalars().first()


async def get_verification_keys(session: AsyncSession) -> dict[str, str]:
    """Map every stored kid, active or rotated out, to its public PEM."""
    stmt = select(SigningKeyEntity.kid, SigningKeyEntity.public_key_pem)
    result = await session.execute(stmt)
    return {kid: pem for kid, pem in result.all()}


async def rotate_signing_key(
    session: AsyncSession, fernet_key: str
) -> SigningKeyEntity:
    """Deactivate every key and store a freshly generated active one.

    Retired keys stay in the table so tokens they signed still verify.
    """
    await session.execute(
        update(SigningKeyEntity)
        .where(SigningKeyEntity.is_active.is_(True))
        .values(is_active=False, rotated_at=datetime.now(UTC))
    )
    keypair = generate_rsa_keypair()
    entity = SigningKeyEntity(
        kid=keypair.kid,
        algorithm="RS256",
        private_key_pem=encrypt_private_key(keypair.private_key_pem, fernet_key),
        public_key_pem=keypair.public_key_pem,
        is_active=True,
    )
    session.add(entity)
    await session.flush()
    logger.info("Rotated signing key, new kid=%s", entity.kid)
    return entity
