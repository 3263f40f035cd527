"""OAuth token revocation endpoint (RFC 7009)."""

import logging
from typing import Annotated

from fastapi import APIRouter, Form
from pydantic import BaseModel
from starlette.responses import JSONResponse

from authz.api.deps import ClientStoreDep, TokenServiceDep, UnitOfWorkDep
from authz.api.errors import error_response
from authz.core.errors import Err

logger = logging.getLogger(__name__)

router = APIRouter()


class _RevokeForm(BaseModel):
    """Bundle form fields for the revocation endpoint."""

    token: str
    client_id: str
    client_secret: str | None = None
    token_type_hint: str | None = None


@router.post("/oauth/revoke", response_model=None)
async def revoke(
    uow: UnitOfWorkDep,
    clients: ClientStoreDep,
    tokens: TokenServiceDep,
    form: Annotated[_RevokeForm, Form()],
) -> JSONResponse:
    """POST /oauth/revoke -- revoke a token; unknown tokens still get 200."""
    authenticated = await clients.authenticate(form.client_id, form.client_secret)
    if isinstance(authenticated, Err):
        return error_response(authenticated)
    if tokens is None:
        return JSONResponse({}, status_code=200)

    result = await tokens.revoke_token(
        form.token, form.token_type_hint, client_id=authenticated.value.client_id
    )
    if isinstance(result, Err):
        logger.error("Revocation failed for client %s: %s", form.client_id, result.message)
        await uow.rollback()
    else:
        await uow.commit()
    return JSONResponse({}, status_code=200)
