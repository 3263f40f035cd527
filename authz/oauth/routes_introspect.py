"""OAuth token introspection endpoint (RFC 7662)."""

from typing import Annotated

from fastapi import APIRouter, Form

from authz.api.deps import TokenServiceDep
from authz.core.errors import Err
from authz.crypto.types import TOKEN_USE_REFRESH
from authz.oauth.types import IntrospectionResponse

router = APIRouter()


@router.post(
    "/oauth/introspect",
    response_model=IntrospectionResponse,
    response_model_exclude_none=True,
)
async def introspect(
    tokens: TokenServiceDep,
    token: Annotated[str, Form()],
) -> IntrospectionResponse:
    """POST /oauth/introspect -- report whether a token is active."""
    if tokens is None:
        return IntrospectionResponse(active=False)
    result = await tokens.introspect_token(token)
    if isinstance(result, Err):
        return IntrospectionResponse(active=False)
    claims = result.value
    return IntrospectionResponse(
        active=True,
        scope=claims.scope,
        client_id=claims.client_id,
        sub=claims.sub,
        exp=claims.exp,
        iat=claims.iat,
        token_type="refresh_token" if claims.token_use == TOKEN_USE_REFRESH else "Bearer",
        permissions=claims.permissions or None,
    )
