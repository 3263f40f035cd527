"""PKCE (RFC 7636) verifier checks."""

import hashlib
import re
import secrets
from base64 import urlsafe_b64encode

from authz.core.errors import Ok, Result, validation_error

METHOD_S256 = "S256"
METHOD_PLAIN = "plain"

_VERIFIER_RE = re.compile(r"^[A-Za-z0-9\-._~]{43,128}$")


def is_well_formed(value: str) -> bool:
    """True if ``value`` is 43-128 characters of the unreserved URI alphabet."""
    return _VERIFIER_RE.fullmatch(value) is not None


def s256_challenge(code_verifier: str) -> str:
    """Compute BASE64URL(SHA256(verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def supported_methods(allow_plain: bool) -> frozenset[str]:
    """Challenge methods accepted under the current policy."""
    if allow_plain:
        return frozenset({METHOD_S256, METHOD_PLAIN})
    return frozenset({METHOD_S256})


def verify_pkce(
    code_verifier: str,
    code_challenge: str,
    method: str | None = METHOD_S256,
    *,
    allow_plain: bool = False,
) -> Result[None]:
    """Check a code verifier against the challenge stored with the code."""
    if not is_well_formed(code_verifier):
        return validation_error("code_verifier is malformed", "invalid_grant")
    method = method or METHOD_S256
    if method not in supported_methods(allow_plain):
        return validation_error(
            f"unsupported code_challenge_method: {method}", "invalid_grant"
        )
    expected = s256_challenge(code_verifier) if method == METHOD_S256 else code_verifier
    if not secrets.compare_digest(expected.encode(), code_challenge.encode()):
        return validation_error("PKCE verification failed", "invalid_grant")
    return Ok(None)
