"""Userinfo endpoint for bearer access tokens."""

from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

from authz.api.deps import TokenServiceDep, UnitOfWorkDep
from authz.api.errors import HTTP_INTERNAL_ERROR, HTTP_UNAUTHORIZED
from authz.core.errors import Err
from authz.crypto.types import TOKEN_USE_ACCESS
from authz.db.repo_user import get_active_user

router = APIRouter()


def _extract_bearer(request: Request) -> str | None:
    """Extract Bearer token from Authorization header."""
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        return auth[len("Bearer ") :]
    return None


def _invalid_token() -> JSONResponse:
    return JSONResponse(
        {"error": "invalid_token"},
        status_code=HTTP_UNAUTHORIZED,
        headers={"WWW-Authenticate": 'Bearer error="invalid_token"'},
    )


@router.get("/oauth/userinfo")
async def userinfo(
    request: Request,
    uow: UnitOfWorkDep,
    tokens: TokenServiceDep,
) -> JSONResponse:
    """GET /oauth/userinfo -- claims for the user behind an access token."""
    token = _extract_bearer(request)
    if not token:
        return _invalid_token()
    if tokens is None:
        return JSONResponse({"error": "server_error"}, status_code=HTTP_INTERNAL_ERROR)

    result = await tokens.introspect_token(token)
    if isinstance(result, Err):
        return _invalid_token()
    claims = result.value
    if claims.token_use != TOKEN_USE_ACCESS or not claims.sub:
        return _invalid_token()

    user = await get_active_user(uow.session, claims.sub)
    if user is None:
        return _invalid_token()
    return JSONResponse(
        {
            "sub": user.id,
            "email": user.email,
            "name": user.name,
            "permissions": claims.permissions,
        }
    )
