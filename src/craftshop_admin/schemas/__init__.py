"""Request and response schemas."""

from .auth import CurrentUser, TokenRequest, TokenResponse, UpdateUserRequest

__all__ = [
    "CurrentUser",
    "TokenRequest",
    "TokenResponse",
    "UpdateUserRequest",
]
