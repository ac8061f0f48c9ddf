"""Signed JWT access and refresh tokens."""

import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from attrs import field, frozen
from beartype import beartype
from jose import JWTError, jwt  # type: ignore[import-untyped]

from ....models.auth import Client, User
from ...logging_utils import get_logger
from .errors import UnsupportedGrantType

logger = get_logger(__name__)

ACCESS_TOKEN_TYPE = "accessToken"
REFRESH_TOKEN_TYPE = "refreshToken"

DEFAULT_ACCESS_TOKEN_LIFETIME = 600
DEFAULT_REFRESH_TOKEN_LIFETIME = 3600

Clock = Callable[[], datetime]


@beartype
def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@frozen
class IssuedToken:
    """A freshly minted token string and its absolute expiry."""

    token: str = field()
    expires_at: datetime = field()
    lifetime: int = field()
    scope: str = field()


class TokenIssuer:
    """Mints access and refresh tokens bound to a (client, user) pair.

    The JWT ``iss`` claim carries the client's internal id and the header
    ``kid`` carries the user's id.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        *,
        fallback_access_lifetime: int = DEFAULT_ACCESS_TOKEN_LIFETIME,
        fallback_refresh_lifetime: int = DEFAULT_REFRESH_TOKEN_LIFETIME,
        clock: Clock | None = None,
    ) -> None:
        """Initialize token issuer.

        Args:
            secret: Signing key
            algorithm: JWT algorithm
            fallback_access_lifetime: Seconds used when the client has no access lifetime
            fallback_refresh_lifetime: Seconds used when the client has no refresh lifetime
            clock: Source of the current time
        """
        self._secret = secret
        self._algorithm = algorithm
        self._fallback_access_lifetime = fallback_access_lifetime
        self._fallback_refresh_lifetime = fallback_refresh_lifetime
        self._clock = clock or utc_now

    @staticmethod
    @beartype
    def resolve_scope(client: Client, user: User, scope: str | None = None) -> str:
        """Pick the first non-empty of requested, client and user scope."""
        for candidate in (scope, client.scope, user.scope):
            if candidate:
                return candidate
        return ""

    @beartype
    def _mint(
        self,
        token_type: str,
        client: Client,
        user: User,
        scope: str | None,
        lifetime: int,
    ) -> IssuedToken:
        now = self._clock()
        expires_at = now + timedelta(seconds=lifetime)
        effective_scope = self.resolve_scope(client, user, scope)

        claims: dict[str, Any] = {
            "tokenType": token_type,
            "scope": effective_scope,
            "username": user.name,
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
            "iss": str(client.id),
            "jti": secrets.token_hex(16),
        }
        token = jwt.encode(
            claims,
            self._secret,
            algorithm=self._algorithm,
            headers={"kid": str(user.id)},
        )
        return IssuedToken(
            token=token,
            expires_at=expires_at,
            lifetime=lifetime,
            scope=effective_scope,
        )

    @beartype
    def access_token_lifetime(self, client: Client) -> int:
        """Seconds an access token minted for this client stays valid."""
        return client.access_token_lifetime or self._fallback_access_lifetime

    @beartype
    def refresh_token_lifetime(self, client: Client) -> int:
        """Seconds a refresh token minted for this client stays valid."""
        return client.refresh_token_lifetime or self._fallback_refresh_lifetime

    @beartype
    def generate_access_token(
        self, client: Client, user: User, scope: str | None = None
    ) -> IssuedToken:
        """Mint an access token."""
        return self._mint(
            ACCESS_TOKEN_TYPE, client, user, scope, self.access_token_lifetime(client)
        )

    @beartype
    def generate_refresh_token(
        self, client: Client, user: User, scope: str | None = None
    ) -> IssuedToken:
        """Mint a refresh token."""
        return self._mint(
            REFRESH_TOKEN_TYPE, client, user, scope, self.refresh_token_lifetime(client)
        )

    @beartype
    def generate_authorization_code(
        self, client: Client, user: User, scope: str | None = None
    ) -> str:
        """Authorization codes are not offered to any client."""
        raise UnsupportedGrantType("Authorization code grant is not supported")

    @beartype
    def decode(self, token: str) -> dict[str, Any] | None:
        """Verify the signature and return claims, ignoring expiry.

        Stored expiry columns are authoritative, so ``exp`` is not checked here.
        """
        try:
            return jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"verify_exp": False, "verify_aud": False},
            )
        except JWTError as e:
            logger.info("Rejected token signature: %s", e)
            return None

    @beartype
    def verify_binding(self, token: str, client: Client, user: User) -> bool:
        """Check the token is signed by us and minted for this client and user."""
        claims = self.decode(token)
        if claims is None:
            return False
        try:
            header = jwt.get_unverified_header(token)
        except JWTError:
            return False
        return claims.get("iss") == str(client.id) and header.get("kid") == str(
            user.id
        )
