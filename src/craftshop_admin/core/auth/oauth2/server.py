"""OAuth2 authorization server implementation."""

import hmac
from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING

from beartype import beartype

from ....models.auth import Client, TokenPair, User, UserToken
from ....schemas.auth import TokenRequest, TokenResponse
from ...logging_utils import get_logger
from ...result_types import Err, Ok, Result
from .errors import GrantRejection, InvalidClient, InvalidToken, UnauthorizedClient
from .grants import ExtensionHandler, select_grant
from .hasher import CredentialHasher
from .scopes import ScopeValidator
from .tokens import Clock, TokenIssuer, utc_now

if TYPE_CHECKING:
    from ....services.credential_store import CredentialStore

logger = get_logger(__name__)


class OAuth2Server:
    """OAuth2 grant engine.

    Every request re-reads clients, users and tokens from the store; nothing
    is cached between requests.
    """

    def __init__(
        self,
        store: "CredentialStore",
        issuer: TokenIssuer,
        hasher: CredentialHasher,
        *,
        clock: Clock | None = None,
        extension_grants: Mapping[str, ExtensionHandler] | None = None,
    ) -> None:
        """Initialize OAuth2 server.

        Args:
            store: Persistence for clients, users, credentials and tokens
            issuer: Token minting
            hasher: Password verification
            clock: Source of the current time
            extension_grants: Handlers for extension grant URIs
        """
        self._store = store
        self._issuer = issuer
        self._hasher = hasher
        self._clock = clock or utc_now
        self._extension_grants = dict(extension_grants or {})

    @property
    def store(self) -> "CredentialStore":
        """Backing credential store."""
        return self._store

    @property
    def issuer(self) -> TokenIssuer:
        """Token issuer."""
        return self._issuer

    @beartype
    def now(self) -> datetime:
        """Current time according to the server clock."""
        return self._clock()

    # Authentication

    @beartype
    async def authenticate_client(
        self, client_id: str | None, client_secret: str | None
    ) -> Client | None:
        """Authenticate OAuth2 client.

        Args:
            client_id: Public client identifier
            client_secret: Client secret, compared exactly

        Returns:
            The client, or None if unknown or the secret does not match
        """
        if not client_id or client_secret is None:
            return None

        client = await self._store.get_client_by_client_id(client_id)
        if client is None:
            return None

        if not hmac.compare_digest(
            client.client_secret.encode("utf-8"), client_secret.encode("utf-8")
        ):
            return None
        return client

    @beartype
    async def authenticate_resource_owner(
        self, username: str | None, password: str | None
    ) -> User | None:
        """Authenticate a user by username and password.

        Only the first loaded credential is consulted.

        Returns:
            The user with its credential loaded, or None
        """
        if not username or not password:
            return None

        user = await self._store.get_user_by_username(username)
        if user is None or not user.credentials:
            return None

        credential = user.credentials[0]
        if not self._hasher.verify(credential.password, password):
            return None
        return user

    @beartype
    async def get_user_from_client(self, client: Client) -> User | None:
        """Resolve the user a client acts for; no client has one."""
        return None

    # Scopes

    @beartype
    async def validate_scope(
        self, user: User, client: Client, scope: str | None
    ) -> str | None:
        """Accept the requested scope only if it equals the client's scope."""
        return ScopeValidator.validate_scope(scope, client.scope)

    @beartype
    async def verify_scope(self, token: TokenPair, scope: str | None) -> bool:
        """Decide whether an issued token satisfies a required scope."""
        return ScopeValidator.verify_scope(
            token.scope, token.client.scope, token.user.scope, scope
        )

    # Tokens

    @beartype
    async def issue_token(
        self,
        client: Client,
        user: User,
        scope: str | None,
        *,
        include_refresh: bool = True,
    ) -> TokenPair:
        """Mint tokens and persist them in one transaction.

        Raises:
            StoreFailure: If the token row could not be written
        """
        async with self._store.transaction():
            access = self._issuer.generate_access_token(client, user, scope)
            refresh = (
                self._issuer.generate_refresh_token(client, user, scope)
                if include_refresh
                else None
            )
            pair = TokenPair(
                access_token=access.token,
                access_token_expires_at=access.expires_at,
                refresh_token=refresh.token if refresh else None,
                refresh_token_expires_at=refresh.expires_at if refresh else None,
                scope=access.scope,
                client=client,
                user=user,
            )
            await self._store.create_token(pair.to_row())

        logger.info(
            "Issued token for user %s via client %s (scope=%s)",
            user.id,
            client.client_id,
            pair.scope,
        )
        return pair

    async def _join(self, row: UserToken | None) -> TokenPair | None:
        if row is None:
            return None
        client = await self._store.get_client(row.client_id)
        user = await self._store.get_user(row.user_id)
        if client is None or user is None:
            return None
        return TokenPair.from_row(row, client, user)

    @beartype
    async def lookup_access_token(self, access_token: str) -> TokenPair | None:
        """Find an issued pair by access token; expiry is not checked."""
        return await self._join(
            await self._store.get_token_by_access_token(access_token)
        )

    @beartype
    async def lookup_refresh_token(self, refresh_token: str) -> TokenPair | None:
        """Find an issued pair by refresh token; expiry is not checked."""
        return await self._join(
            await self._store.get_token_by_refresh_token(refresh_token)
        )

    @beartype
    async def revoke_token(self, token: TokenPair) -> bool:
        """Delete the stored pair if present. Always reports success."""
        row = await self._store.find_token(token.access_token, token.user.id)
        if row is not None:
            await self._store.delete_token(row.access_token)
            logger.info("Revoked token for user %s", token.user.id)
        return True

    # Authorization codes are not offered to any client.

    @beartype
    async def save_authorization_code(
        self, code: str, client: Client, user: User
    ) -> None:
        """Authorization codes are never stored."""
        return None

    @beartype
    async def get_authorization_code(self, code: str) -> None:
        """No authorization code is ever found."""
        return None

    @beartype
    async def revoke_authorization_code(self, code: str) -> bool:
        """Nothing to revoke."""
        return False

    # Endpoints

    @beartype
    async def token(self, request: TokenRequest) -> Result[TokenResponse, GrantRejection]:
        """Handle token request.

        Grant selection, client authentication, owner authentication, scope
        resolution and issuance run strictly in that order; the first failing
        step ends the request.

        Args:
            request: Token endpoint parameters

        Returns:
            Result containing the token response or the rejection
        """
        try:
            grant = select_grant(request.grant_type, self._extension_grants)
            grant.ensure_supported()

            client = await self.authenticate_client(
                request.client_id, request.client_secret
            )
            if client is None:
                raise InvalidClient("Invalid client credentials")
            if grant.grant_type not in client.grants:
                raise UnauthorizedClient(
                    f"Client not authorized for grant type {grant.grant_type}"
                )

            pair = await grant.handle(self, request, client)
        except GrantRejection as e:
            logger.info(
                "Token request denied (grant_type=%s, client_id=%s): %s: %s",
                request.grant_type,
                request.client_id,
                e.error,
                e,
            )
            return Err(e)

        return Ok(
            TokenResponse(
                access_token=pair.access_token,
                token_type="Bearer",
                expires_in=self._issuer.access_token_lifetime(pair.client),
                refresh_token=pair.refresh_token,
                scope=pair.scope,
            )
        )

    @beartype
    async def authenticate_bearer(
        self, access_token: str | None, required_scope: str | None = None
    ) -> Result[TokenPair, GrantRejection]:
        """Validate a bearer token for a protected operation.

        Lookup, expiry, signature binding and scope are checked in order.
        Every failure yields the same ``InvalidToken`` rejection.
        """
        pair = await self.lookup_access_token(access_token) if access_token else None

        reason: str | None = None
        if pair is None:
            reason = "unknown token"
        elif pair.access_token_expires_at <= self.now():
            reason = "access token expired"
        elif not self._issuer.verify_binding(pair.access_token, pair.client, pair.user):
            reason = "token not bound to its client and user"
        elif required_scope is not None and not await self.verify_scope(
            pair, required_scope
        ):
            reason = f"scope {pair.scope!r} does not satisfy {required_scope!r}"

        if reason is not None or pair is None:
            logger.info("Bearer token rejected: %s", reason)
            return Err(InvalidToken("Invalid or expired access token"))
        return Ok(pair)
