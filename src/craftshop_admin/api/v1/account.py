"""Account endpoints for the signed-in user."""

from typing import Annotated

from beartype import beartype
from fastapi import APIRouter, Depends, Form, Response, status

from ...core.auth.oauth2.errors import InvalidCredential
from ...schemas.auth import CurrentUser, UpdateUserRequest
from ...services.account_service import AccountService
from ..dependencies import CurrentToken, get_account_service
from ..response_patterns import APIResponseHandler, ErrorResponse

router = APIRouter(prefix="/account", tags=["account"])


@router.get("/me", response_model=CurrentUser | ErrorResponse)
@beartype
async def get_me(
    response: Response,
    current: CurrentToken,
    service: Annotated[AccountService, Depends(get_account_service)],
) -> CurrentUser | ErrorResponse:
    """Return the authenticated user's profile."""
    return APIResponseHandler.from_result(await service.me(current), response)


@router.put(
    "",
    response_model=CurrentUser | ErrorResponse,
    responses={400: {"model": ErrorResponse}},
)
@beartype
async def update_me(
    changes: UpdateUserRequest,
    response: Response,
    current: CurrentToken,
    service: Annotated[AccountService, Depends(get_account_service)],
) -> CurrentUser | ErrorResponse:
    """Change the authenticated user's name and/or email."""
    return APIResponseHandler.from_result(
        await service.update_profile(current, changes), response
    )


@router.put(
    "/password",
    status_code=status.HTTP_204_NO_CONTENT,
    response_model=None,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
@beartype
async def change_password(
    response: Response,
    current: CurrentToken,
    service: Annotated[AccountService, Depends(get_account_service)],
    old_password: Annotated[str | None, Form()] = None,
    new_password: Annotated[str | None, Form()] = None,
) -> Response | ErrorResponse:
    """Replace the password after checking the current one."""
    result = await service.change_password(current, old_password, new_password)
    if result.is_err():
        error = result.unwrap_err()
        if isinstance(error, InvalidCredential):
            response.status_code = status.HTTP_403_FORBIDDEN
            return ErrorResponse(
                error=error.error_description or "Forbidden",
                error_code="forbidden",
            )
        return APIResponseHandler.error_response(error, response)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/signout", status_code=status.HTTP_204_NO_CONTENT)
@beartype
async def signout(
    current: CurrentToken,
    service: Annotated[AccountService, Depends(get_account_service)],
) -> Response:
    """Delete the presented access token."""
    await service.signout(current)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
