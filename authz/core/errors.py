"""Result types and error taxonomy shared by all service operations."""

import functools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, ParamSpec, TypeVar

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

T = TypeVar("T")
P = ParamSpec("P")
R = TypeVar("R")


class ErrorKind(StrEnum):
    """Category of an expected failure."""

    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    RATE_LIMITED = "rate_limited"
    INTERNAL = "internal"


HTTP_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.INTERNAL: 500,
}

_DEFAULT_OAUTH_ERROR: dict[ErrorKind, str] = {
    ErrorKind.VALIDATION: "invalid_request",
    ErrorKind.UNAUTHORIZED: "invalid_client",
    ErrorKind.NOT_FOUND: "invalid_request",
    ErrorKind.CONFLICT: "invalid_request",
    ErrorKind.RATE_LIMITED: "slow_down",
    ErrorKind.INTERNAL: "server_error",
}


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""

    value: T


@dataclass(frozen=True, slots=True)
class Err:
    """Expected failure with a kind, a human message and an OAuth error code.

    ``message`` is safe to return to callers for every kind except
    ``INTERNAL``, whose text is only logged.
    """

    kind: ErrorKind
    message: str
    error: str | None = None

    @property
    def oauth_error(self) -> str:
        """OAuth ``error`` value to report for this failure."""
        return self.error or _DEFAULT_OAUTH_ERROR[self.kind]

    @property
    def status_code(self) -> int:
        """HTTP status for this failure."""
        return HTTP_STATUS_BY_KIND[self.kind]


Result = Ok[T] | Err


def validation_error(message: str, error: str | None = None) -> Err:
    """Shorthand for an ``Err`` of kind VALIDATION."""
    return Err(ErrorKind.VALIDATION, message, error)


def unauthorized(message: str, error: str | None = None) -> Err:
    """Shorthand for an ``Err`` of kind UNAUTHORIZED."""
    return Err(ErrorKind.UNAUTHORIZED, message, error)


def not_found(message: str, error: str | None = None) -> Err:
    """Shorthand for an ``Err`` of kind NOT_FOUND."""
    return Err(ErrorKind.NOT_FOUND, message, error)


def conflict(message: str) -> Err:
    """Shorthand for an ``Err`` of kind CONFLICT."""
    return Err(ErrorKind.CONFLICT, message)


def wrap_store_errors(
    func: Callable[P, Awaitable[R]],
) -> Callable[P, Awaitable[R | Err]]:
    """Turn store failures and timeouts raised by ``func`` into ``Err(INTERNAL)``."""

    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R | Err:
        try:
            return await func(*args, **kwargs)
        except TimeoutError:
            logger.warning("Store operation %s timed out", func.__qualname__)
            return Err(ErrorKind.INTERNAL, "store operation timed out")
        except SQLAlchemyError:
            logger.exception("Store operation %s failed", func.__qualname__)
            return Err(ErrorKind.INTERNAL, "store operation failed")

    return wrapper
