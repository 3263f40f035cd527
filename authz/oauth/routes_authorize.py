"""OAuth authorization endpoint."""

from typing import Annotated
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from starlette.responses import JSONResponse

from authz.api.deps import CodeStoreDep, UnitOfWorkDep, get_authenticated_user_id
from authz.api.errors import HTTP_BAD_REQUEST, error_response
from authz.core.errors import Err
from authz.oauth.types import AuthorizeRequest

router = APIRouter()


class _AuthQuery(BaseModel):
    """Bundle query params for the authorize endpoint."""

    client_id: str
    redirect_uri: str
    response_type: str
    scope: str = ""
    state: str | None = None
    nonce: str | None = None
    code_challenge: str | None = None
    code_challenge_method: str | None = None


@router.get("/oauth/authorize", response_model=None)
async def authorize(
    uow: UnitOfWorkDep,
    codes: CodeStoreDep,
    user_id: Annotated[str | None, Depends(get_authenticated_user_id)],
    q: Annotated[_AuthQuery, Query()],
) -> RedirectResponse | JSONResponse:
    """GET /oauth/authorize -- issue a code for the signed-in user."""
    if q.response_type != "code":
        return JSONResponse(
            {"error": "unsupported_response_type"},
            status_code=HTTP_BAD_REQUEST,
        )
    if not user_id:
        return JSONResponse({"error": "login_required"}, status_code=HTTP_BAD_REQUEST)

    created = await codes.create(
        AuthorizeRequest(
            client_id=q.client_id,
            redirect_uri=q.redirect_uri,
            scope=q.scope,
            code_challenge=q.code_challenge,
            code_challenge_method=q.code_challenge_method,
            nonce=q.nonce,
        ),
        user_id,
    )
    if isinstance(created, Err):
        return error_response(created)
    await uow.commit()

    redir_params = {"code": created.value}
    if q.state:
        redir_params["state"] = q.state
    separator = "&" if "?" in q.redirect_uri else "?"
    return RedirectResponse(
        url=f"{q.redirect_uri}{separator}{urlencode(redir_params)}",
        status_code=302,
    )
