"""OAuth token endpoint."""

import logging
from typing import Annotated

from fastapi import APIRouter, Form
from pydantic import BaseModel
from starlette.responses import JSONResponse

from authz.api.deps import ClientStoreDep, GrantHandlerDep, UnitOfWorkDep
from authz.api.errors import HTTP_INTERNAL_ERROR, error_response
from authz.core.errors import Err, ErrorKind
from authz.oauth.grants import unsupported_grant
from authz.oauth.types import (
    GRANT_AUTHORIZATION_CODE,
    GRANT_CLIENT_CREDENTIALS,
    GRANT_REFRESH_TOKEN,
    TokenResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_NO_STORE = {"Cache-Control": "no-store", "Pragma": "no-cache"}


class _TokenForm(BaseModel):
    """Bundle form fields for the token endpoint."""

    grant_type: str
    client_id: str
    client_secret: str | None = None
    code: str | None = None
    redirect_uri: str | None = None
    code_verifier: str | None = None
    refresh_token: str | None = None
    scope: str | None = None


@router.post("/oauth/token", response_model=None)
async def token_endpoint(
    uow: UnitOfWorkDep,
    clients: ClientStoreDep,
    grants: GrantHandlerDep,
    form: Annotated[_TokenForm, Form()],
) -> JSONResponse:
    """POST /oauth/token -- exchange a grant for tokens."""
    if grants is None:
        return JSONResponse(
            {"error": "server_error", "error_description": "No signing key"},
            status_code=HTTP_INTERNAL_ERROR,
        )

    authenticated = await clients.authenticate(form.client_id, form.client_secret)
    if isinstance(authenticated, Err):
        logger.info("Client authentication failed for %s", form.client_id)
        return error_response(authenticated)
    client = authenticated.value

    if form.grant_type == GRANT_AUTHORIZATION_CODE:
        result = await grants.authorization_code(
            client,
            code=form.code,
            code_verifier=form.code_verifier,
            redirect_uri=form.redirect_uri,
            scope=form.scope,
        )
    elif form.grant_type == GRANT_REFRESH_TOKEN:
        result = await grants.refresh(
            client, refresh_token=form.refresh_token, scope=form.scope
        )
    elif form.grant_type == GRANT_CLIENT_CREDENTIALS:
        result = await grants.client_credentials(client, scope=form.scope)
    else:
        result = unsupported_grant(form.grant_type)

    if isinstance(result, Err):
        if result.kind == ErrorKind.INTERNAL:
            await uow.rollback()
        else:
            await uow.commit()
        return error_response(result)

    await uow.commit()
    body: TokenResponse = result.value
    return JSONResponse(body.model_dump(exclude_none=True), headers=_NO_STORE)
