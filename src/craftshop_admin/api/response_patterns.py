"""API response patterns following Result[T,E] + HTTP semantics."""

from typing import Any, TypeVar, Union

from beartype import beartype
from fastapi import Response
from pydantic import BaseModel, ConfigDict, Field

from ..core.auth.oauth2.errors import OAuth2Error
from ..core.result_types import Result

T = TypeVar("T")


@beartype
class ErrorResponse(BaseModel):
    """Standardized error response for business logic failures."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_assignment=True,
        str_strip_whitespace=True,
        validate_default=True,
    )

    success: bool = Field(default=False, description="Always false for error responses")
    error: str = Field(..., description="Human-readable error message")
    error_code: str | None = Field(default=None, description="Machine-readable error code")
    details: dict[str, Any] | None = Field(
        default=None, description="Additional error context"
    )


class APIResponseHandler:
    """Turns service ``Result`` values into HTTP responses."""

    @staticmethod
    @beartype
    def error_response(
        error: OAuth2Error,
        response: Response,
        status_code: int | None = None,
    ) -> ErrorResponse:
        """Render an OAuth2 error with its public code and message."""
        response.status_code = status_code or error.status_code
        return ErrorResponse(
            error=error.public_description,
            error_code=error.public_error,
        )

    @staticmethod
    @beartype
    def from_result(
        result: Result[T, OAuth2Error],
        response: Response,
        success_status: int = 200,
    ) -> Union[T, ErrorResponse]:
        """Convert Result[T,E] to HTTP response with proper status codes.

        Args:
            result: Service layer Result
            response: FastAPI Response object to set status code
            success_status: HTTP status for successful operations (default 200)

        Returns:
            Either the unwrapped success value or ErrorResponse
        """
        if result.is_err():
            return APIResponseHandler.error_response(result.unwrap_err(), response)

        response.status_code = success_status
        return result.unwrap()
