"""Tests for client secret hashing and token digests."""

import pytest

from authz.crypto.hashing import (
    generate_client_secret,
    hash_secret,
    hash_token,
    verify_secret,
)


class TestHashSecret:
    """Tests for hash_secret."""

    def test_produces_argon2_hash(self) -> None:
        assert hash_secret("my-secret").startswith("$argon2")

    def test_same_secret_produces_different_hashes(self) -> None:
        assert hash_secret("same") != hash_secret("same")  # salted


class TestVerifySecret:
    """Tests for verify_secret."""

    def test_correct_secret_returns_true(self) -> None:
        hashed = hash_secret("correct-horse")
        assert verify_secret("correct-horse", hashed) is True

    def test_wrong_secret_returns_false(self) -> None:
        hashed = hash_secret("correct-horse")
        assert verify_secret("wrong-horse", hashed) is False

    def test_invalid_hash_returns_false(self) -> None:
        assert verify_secret("anything", "not-a-valid-hash") is False

    @pytest.mark.parametrize("secret", ["short", "a" * 128, "special!@#$%"])
    def test_various_secrets(self, secret: str) -> None:
        assert verify_secret(secret, hash_secret(secret)) is True


class TestGenerateClientSecret:
    """Tests for generate_client_secret."""

    def test_secrets_are_long_and_unique(self) -> None:
        secrets = {generate_client_secret() for _ in range(10)}
        assert len(secrets) == 10
        assert all(len(s) >= 40 for s in secrets)


class TestHashToken:
    """Tests for hash_token."""

    def test_is_sha256_hex(self) -> None:
        digest = hash_token("abc")
        assert digest == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
