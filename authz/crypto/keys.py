"""RSA signing keypairs and their Fernet encryption at rest."""

from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from authz.crypto.types import SigningKeyData
from authz.db.base import new_row_id

RSA_KEY_SIZE = 2048
RSA_PUBLIC_EXPONENT = 65537


def _cipher(fernet_key: str) -> Fernet:
    return Fernet(fernet_key.encode())


def _private_pem(key: rsa.RSAPrivateKey) -> str:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


def _public_pem(key: rsa.RSAPublicKey) -> str:
    return key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()


def generate_rsa_keypair(key_size: int = RSA_KEY_SIZE) -> SigningKeyData:
    """Generate an RSA keypair for RS256 signing, identified by a fresh ``kid``."""
    key = rsa.generate_private_key(public_exponent=RSA_PUBLIC_EXPONENT, key_size=key_size)
    return SigningKeyData(
        kid=new_row_id(),
        private_key_pem=_private_pem(key),
        public_key_pem=_public_pem(key.public_key()),
    )


def encrypt_private_key(private_pem: str, fernet_key: str) -> str:
    """Encrypt a PEM private key for the ``signing_keys`` table."""
    return _cipher(fernet_key).encrypt(private_pem.encode()).decode()


def decrypt_private_key(encrypted: str, fernet_key: str) -> str:
    """Decrypt a stored private key; raises ``InvalidToken`` on a wrong key."""
    return _cipher(fernet_key).decrypt(encrypted.encode()).decode()
