"""OAuth2 token and revocation endpoints."""

from typing import Annotated

from beartype import beartype
from fastapi import APIRouter, Depends, Form, Response, status

from ...core.auth.oauth2.server import OAuth2Server
from ...schemas.auth import TokenRequest, TokenResponse
from ..dependencies import CurrentToken, get_oauth2_server
from ..response_patterns import APIResponseHandler, ErrorResponse

router = APIRouter(prefix="/auth", tags=["oauth2"])


@router.post(
    "/token",
    response_model=TokenResponse | ErrorResponse,
    responses={400: {"model": ErrorResponse}},
)
@beartype
async def token(
    response: Response,
    oauth2_server: Annotated[OAuth2Server, Depends(get_oauth2_server)],
    grant_type: Annotated[str, Form()],
    client_id: Annotated[str | None, Form()] = None,
    client_secret: Annotated[str | None, Form()] = None,
    username: Annotated[str | None, Form()] = None,
    password: Annotated[str | None, Form()] = None,
    refresh_token: Annotated[str | None, Form()] = None,
    scope: Annotated[str | None, Form()] = None,
    redirect_uri: Annotated[str | None, Form()] = None,
    code: Annotated[str | None, Form()] = None,
) -> TokenResponse | ErrorResponse:
    """OAuth2 token endpoint.

    Supports the ``password`` and ``refresh_token`` grants. Wrong client
    credentials and wrong user credentials produce the same response body.

    Args:
        response: Outgoing response, used to set the error status
        oauth2_server: OAuth2 server instance
        grant_type: OAuth2 grant type
        client_id: Client identifier
        client_secret: Client secret
        username: Username (password grant)
        password: Password (password grant)
        refresh_token: Refresh token (refresh_token grant)
        scope: Requested scope
        redirect_uri: Accepted for compatibility, unused
        code: Authorization code; that grant is not supported

    Returns:
        Token response or error response
    """
    result = await oauth2_server.token(
        TokenRequest(
            grant_type=grant_type,
            client_id=client_id,
            client_secret=client_secret,
            username=username,
            password=password,
            refresh_token=refresh_token,
            scope=scope,
            redirect_uri=redirect_uri,
            code=code,
        )
    )
    if result.is_err():
        return APIResponseHandler.error_response(result.unwrap_err(), response)
    return result.unwrap()


@router.post("/revoke", status_code=status.HTTP_204_NO_CONTENT)
@beartype
async def revoke(
    current: CurrentToken,
    oauth2_server: Annotated[OAuth2Server, Depends(get_oauth2_server)],
) -> Response:
    """Revoke the presented access token and its refresh token.

    Always succeeds for an authenticated caller.
    """
    await oauth2_server.revoke_token(current)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
