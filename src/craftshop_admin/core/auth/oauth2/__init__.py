"""OAuth2 authorization server implementation."""

from .errors import (
    GrantRejection,
    InvalidClient,
    InvalidCredential,
    InvalidRequest,
    InvalidScope,
    InvalidToken,
    NotFound,
    OAuth2Error,
    StoreFailure,
    UnauthorizedClient,
    UnsupportedGrantType,
)
from .grants import GrantType, select_grant
from .hasher import CredentialHasher
from .scopes import ScopeType, ScopeValidator
from .server import OAuth2Server
from .tokens import IssuedToken, TokenIssuer

__all__ = [
    "CredentialHasher",
    "GrantRejection",
    "GrantType",
    "InvalidClient",
    "InvalidCredential",
    "InvalidRequest",
    "InvalidScope",
    "InvalidToken",
    "IssuedToken",
    "NotFound",
    "OAuth2Error",
    "OAuth2Server",
    "ScopeType",
    "ScopeValidator",
    "StoreFailure",
    "TokenIssuer",
    "UnauthorizedClient",
    "UnsupportedGrantType",
    "select_grant",
]
