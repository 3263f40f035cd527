"""Rendering of service errors as OAuth JSON error responses."""

import logging

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from starlette.responses import JSONResponse

from authz.core.errors import Err, ErrorKind

logger = logging.getLogger(__name__)

HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_INTERNAL_ERROR = 500


def error_response(err: Err) -> JSONResponse:
    """Build an RFC 6749 section 5.2 error body for ``err``.

    NOT_FOUND never surfaces as 404: an unknown client is ``invalid_client``
    (401) and anything else is a bad request. INTERNAL text is not exposed.
    """
    status_code = err.status_code
    if err.kind == ErrorKind.NOT_FOUND:
        status_code = (
            HTTP_UNAUTHORIZED if err.oauth_error == "invalid_client" else HTTP_BAD_REQUEST
        )
    body = {"error": err.oauth_error}
    if err.kind != ErrorKind.INTERNAL:
        body["error_description"] = err.message
    return JSONResponse(body, status_code=status_code)


async def store_failure_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render store failures that escaped a service as a bare ``server_error``."""
    logger.exception(
        "Unhandled store failure on %s %s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse({"error": "server_error"}, status_code=HTTP_INTERNAL_ERROR)


STORE_FAILURES: tuple[type[Exception], ...] = (SQLAlchemyError, TimeoutError)
