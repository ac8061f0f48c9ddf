"""Grant-type variants handled by the OAuth2 server.

The set of grants is closed: ``select_grant`` maps a ``grant_type`` string
to one of the variants below with an explicit switch. Extension grants
(absolute URIs, recognised by a ``:``) are only available when a handler was
registered with the server.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from enum import Enum
from typing import TYPE_CHECKING

from beartype import beartype

from ....models.auth import Client, TokenPair
from ....schemas.auth import TokenRequest
from .errors import InvalidCredential, InvalidRequest, InvalidScope, UnsupportedGrantType

if TYPE_CHECKING:
    from .server import OAuth2Server

ExtensionHandler = Callable[
    ["OAuth2Server", TokenRequest, Client], Awaitable[TokenPair]
]


class GrantType(str, Enum):
    """Grant types understood by the token endpoint."""

    PASSWORD = "password"
    REFRESH_TOKEN = "refresh_token"
    CLIENT_CREDENTIALS = "client_credentials"
    AUTHORIZATION_CODE = "authorization_code"


class Grant(ABC):
    """Common contract of every grant variant."""

    def __init__(self, grant_type: str) -> None:
        self.grant_type = grant_type

    def ensure_supported(self) -> None:
        """Fail before any credential is checked if the grant is disabled."""

    @abstractmethod
    async def handle(
        self, server: "OAuth2Server", request: TokenRequest, client: Client
    ) -> TokenPair:
        """Authenticate the grant-specific credentials and issue tokens."""


class PasswordGrant(Grant):
    """Resource-owner password credentials."""

    def __init__(self) -> None:
        super().__init__(GrantType.PASSWORD.value)

    async def handle(
        self, server: "OAuth2Server", request: TokenRequest, client: Client
    ) -> TokenPair:
        if not request.username or not request.password:
            raise InvalidRequest("username and password are required")

        user = await server.authenticate_resource_owner(
            request.username, request.password
        )
        if user is None:
            raise InvalidCredential("Invalid username or password")

        scope = await server.validate_scope(user, client, request.scope or client.scope)
        if scope is None:
            raise InvalidScope(f"Scope not allowed for client {client.client_id}")

        return await server.issue_token(client, user, scope)


class RefreshTokenGrant(Grant):
    """Exchange a refresh token for a new pair; the old pair is revoked."""

    def __init__(self) -> None:
        super().__init__(GrantType.REFRESH_TOKEN.value)

    async def handle(
        self, server: "OAuth2Server", request: TokenRequest, client: Client
    ) -> TokenPair:
        if not request.refresh_token:
            raise InvalidRequest("refresh_token is required")

        pair = await server.lookup_refresh_token(request.refresh_token)
        if pair is None:
            raise InvalidCredential("Invalid refresh token")
        if pair.client.id != client.id:
            raise InvalidCredential("Refresh token was issued to another client")
        if (
            pair.refresh_token_expires_at is None
            or pair.refresh_token_expires_at <= server.now()
        ):
            raise InvalidCredential("Refresh token has expired")
        if request.scope and request.scope != pair.scope:
            raise InvalidScope("Refreshed scope must equal the original scope")

        async with server.store.transaction():
            if not await server.store.delete_token(pair.access_token):
                raise InvalidCredential("Refresh token already used")
            return await server.issue_token(client, pair.user, pair.scope)


class ClientCredentialsGrant(Grant):
    """Client acting on behalf of its associated user; no refresh token."""

    def __init__(self) -> None:
        super().__init__(GrantType.CLIENT_CREDENTIALS.value)

    async def handle(
        self, server: "OAuth2Server", request: TokenRequest, client: Client
    ) -> TokenPair:
        user = await server.get_user_from_client(client)
        if user is None:
            raise InvalidCredential("No user is associated with this client")

        scope = await server.validate_scope(user, client, request.scope or client.scope)
        if scope is None:
            raise InvalidScope(f"Scope not allowed for client {client.client_id}")

        return await server.issue_token(client, user, scope, include_refresh=False)


class AuthorizationCodeGrant(Grant):
    """Disabled; every request fails with ``UnsupportedGrantType``."""

    def __init__(self) -> None:
        super().__init__(GrantType.AUTHORIZATION_CODE.value)

    def ensure_supported(self) -> None:
        raise UnsupportedGrantType("Authorization code grant is not supported")

    async def handle(
        self, server: "OAuth2Server", request: TokenRequest, client: Client
    ) -> TokenPair:
        raise UnsupportedGrantType("Authorization code grant is not supported")


class ExtensionGrant(Grant):
    """Grant identified by an absolute URI and served by a registered handler."""

    def __init__(self, grant_type: str, handler: ExtensionHandler) -> None:
        super().__init__(grant_type)
        self._handler = handler

    async def handle(
        self, server: "OAuth2Server", request: TokenRequest, client: Client
    ) -> TokenPair:
        return await self._handler(server, request, client)


@beartype
def is_extension_grant_type(grant_type: str) -> bool:
    """Extension grant types are absolute URIs."""
    return ":" in grant_type


def select_grant(
    grant_type: str, extensions: Mapping[str, ExtensionHandler] | None = None
) -> Grant:
    """Map a ``grant_type`` parameter to its variant.

    Raises:
        UnsupportedGrantType: Unknown type or extension without a handler
    """
    if grant_type == GrantType.PASSWORD.value:
        return PasswordGrant()
    if grant_type == GrantType.REFRESH_TOKEN.value:
        return RefreshTokenGrant()
    if grant_type == GrantType.CLIENT_CREDENTIALS.value:
        return ClientCredentialsGrant()
    if grant_type == GrantType.AUTHORIZATION_CODE.value:
        return AuthorizationCodeGrant()
    if is_extension_grant_type(grant_type):
        handler = (extensions or {}).get(grant_type)
        if handler is not None:
            return ExtensionGrant(grant_type, handler)
    raise UnsupportedGrantType(f"Unsupported grant type: {grant_type}")
