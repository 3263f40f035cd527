"""Scope and redirect URI validation."""

import logging
from collections.abc import Iterable
from urllib.parse import urlsplit

from authz.core.errors import Ok, Result, validation_error

logger = logging.getLogger(__name__)

ALLOWED_REDIRECT_SCHEMES = frozenset({"http", "https"})
LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})
MAX_NONCE_LENGTH = 256


def parse_scope(scope: str | None) -> list[str]:
    """Split a space-delimited scope string, dropping empty tokens."""
    if not scope:
        return []
    return scope.split()


def validate_requested(scope: str | None, allowed: Iterable[str]) -> Result[list[str]]:
    """Check that every requested scope token is allowed for the client."""
    requested = parse_scope(scope)
    if not requested:
        return validation_error("scope must not be empty", "invalid_scope")
    allowed_set = set(allowed)
    denied = [s for s in requested if s not in allowed_set]
    if denied:
        return validation_error(
            f"scope not allowed: {' '.join(denied)}", "invalid_scope"
        )
    return Ok(requested)


def enforce_subset(authorized: str, requested: str | None) -> Result[str]:
    """Return the effective scope, which may narrow but never widen ``authorized``."""
    if not parse_scope(requested):
        return Ok(authorized)
    authorized_set = set(parse_scope(authorized))
    tokens = parse_scope(requested)
    exceeding = [s for s in tokens if s not in authorized_set]
    if exceeding:
        return validation_error(
            f"requested scope exceeds grant: {' '.join(exceeding)}", "invalid_scope"
        )
    return Ok(" ".join(tokens))


def validate_redirect_uri(redirect_uri: str, registered: Iterable[str]) -> Result[str]:
    """Exact-match a redirect URI against the client's registered URIs."""
    if redirect_uri not in set(registered):
        return validation_error("redirect_uri not registered for this client")
    try:
        parts = urlsplit(redirect_uri)
    except ValueError:
        return validation_error("redirect_uri is malformed")
    if parts.fragment or "#" in redirect_uri:
        return validation_error("redirect_uri must not contain a fragment")
    if parts.scheme not in ALLOWED_REDIRECT_SCHEMES:
        return validation_error("redirect_uri scheme must be http or https")
    if parts.scheme == "http" and parts.hostname not in LOOPBACK_HOSTS:
        logger.warning("Redirect URI uses plain http for host %s", parts.hostname)
    return Ok(redirect_uri)


def validate_nonce(nonce: str | None) -> Result[str | None]:
    """Bound the length of an OpenID Connect nonce."""
    if nonce is not None and len(nonce) > MAX_NONCE_LENGTH:
        return validation_error("nonce is too long")
    return Ok(nonce)
