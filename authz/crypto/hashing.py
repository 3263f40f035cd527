"""Client secret hashing (Argon2id) and token digests (SHA-256)."""

import hashlib
import secrets

import argon2

CLIENT_SECRET_BYTES = 32

_hasher = argon2.PasswordHasher(
    time_cost=2,
    memory_cost=65536,
    parallelism=1,
)


def generate_client_secret() -> str:
    """Generate a random client secret, returned once to the registrant."""
    return secrets.token_urlsafe(CLIENT_SECRET_BYTES)


def hash_secret(secret: str) -> str:
    """Hash a client secret using Argon2id."""
    return _hasher.hash(secret)


def verify_secret(plain: str, hashed: str) -> bool:
    """Verify a plaintext secret against its Argon2 hash."""
    try:
        return _hasher.verify(hashed, plain)
    except argon2.exceptions.VerifyMismatchError:
        return False
    except argon2.exceptions.InvalidHashError:
        return False


def hash_token(token: str) -> str:
    """SHA-256 hash a token for database storage."""
    return hashlib.sha256(token.encode()).hexdigest()
