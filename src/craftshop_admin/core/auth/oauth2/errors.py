"""OAuth2 error hierarchy.

``GrantRejection`` subclasses are recoverable denials: the engine turns them
into ``Err`` results and the HTTP layer into 4xx responses. ``StoreFailure``
is never recovered by the engine; it propagates after the enclosing
transaction rolled back.
"""

from typing import Any

from beartype import beartype

# Public error code shared by client and resource-owner authentication
# failures so a caller cannot tell which half of the credentials was wrong.
ACCESS_DENIED = "access_denied"
ACCESS_DENIED_DESCRIPTION = "Invalid client or user credentials"


class OAuth2Error(Exception):
    """OAuth2 specific errors."""

    error: str = "server_error"
    status_code: int = 400

    def __init__(
        self,
        error_description: str | None = None,
        *,
        error: str | None = None,
        error_uri: str | None = None,
        status_code: int | None = None,
    ) -> None:
        """Initialize OAuth2 error."""
        if error is not None:
            self.error = error
        if status_code is not None:
            self.status_code = status_code
        self.error_description = error_description
        self.error_uri = error_uri
        super().__init__(error_description or self.error)

    @property
    def public_error(self) -> str:
        """Error code exposed to API callers."""
        return self.error

    @property
    def public_description(self) -> str:
        """Message exposed to API callers."""
        return self.error_description or self.error

    @beartype
    def to_dict(self) -> dict[str, Any]:
        """Convert to OAuth2 error response."""
        response: dict[str, Any] = {"error": self.public_error}
        if self.error_description:
            response["error_description"] = self.public_description
        if self.error_uri:
            response["error_uri"] = self.error_uri
        return response


class GrantRejection(OAuth2Error):
    """A request the grant engine refused; safe to report to the caller."""


class InvalidClient(GrantRejection):
    """Unknown client or wrong client secret."""

    error = "invalid_client"
    status_code = 400

    @property
    def public_error(self) -> str:
        return ACCESS_DENIED

    @property
    def public_description(self) -> str:
        return ACCESS_DENIED_DESCRIPTION


class UnauthorizedClient(InvalidClient):
    """Client authenticated but may not use the requested grant type."""

    error = "unauthorized_client"


class InvalidCredential(GrantRejection):
    """Wrong resource-owner credentials or an unusable refresh token."""

    error = "invalid_grant"
    status_code = 400

    @property
    def public_error(self) -> str:
        return ACCESS_DENIED

    @property
    def public_description(self) -> str:
        return ACCESS_DENIED_DESCRIPTION


class UnsupportedGrantType(GrantRejection):
    """Grant type disabled or not understood."""

    error = "unsupported_grant_type"
    status_code = 400


class InvalidScope(GrantRejection):
    """Requested scope not allowed for the client."""

    error = "invalid_scope"
    status_code = 400


class InvalidRequest(GrantRejection):
    """A required request parameter is missing."""

    error = "invalid_request"
    status_code = 400


class NotFound(GrantRejection):
    """Referenced entity does not exist."""

    error = "not_found"
    status_code = 404


class InvalidToken(GrantRejection):
    """Bearer token missing, unknown, expired or insufficiently scoped."""

    error = "invalid_token"
    status_code = 401


class StoreFailure(OAuth2Error):
    """Persistence failure; the enclosing transaction has been rolled back."""

    error = "server_error"
    status_code = 500
