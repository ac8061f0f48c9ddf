"""FastAPI dependencies for the credential store, grant engine and bearer auth.

Protected endpoints depend on ``require_scope(...)``; any failed check is a
uniform 401 so callers cannot tell which check rejected them.
"""

from collections.abc import Awaitable, Callable
from typing import Annotated

from beartype import beartype
from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..core.auth.oauth2.hasher import CredentialHasher
from ..core.auth.oauth2.server import OAuth2Server
from ..core.auth.oauth2.tokens import TokenIssuer
from ..core.config import Settings, get_settings
from ..models.auth import TokenPair
from ..services.account_service import AccountService
from ..services.credential_store import CredentialStore

# Security scheme; missing headers are rejected by require_scope itself.
security = HTTPBearer(auto_error=False)


@beartype
def get_credential_store(request: Request) -> CredentialStore:
    """Provide the credential store created at application startup."""
    return request.app.state.credential_store


@beartype
def get_hasher(settings: Annotated[Settings, Depends(get_settings)]) -> CredentialHasher:
    """Provide the password hasher."""
    return CredentialHasher(settings.password_hash_iterations)


@beartype
def get_token_issuer(
    settings: Annotated[Settings, Depends(get_settings)],
) -> TokenIssuer:
    """Provide the token issuer."""
    return TokenIssuer(
        settings.jwt_secret,
        settings.jwt_algorithm,
        fallback_access_lifetime=settings.fallback_access_token_lifetime,
        fallback_refresh_lifetime=settings.fallback_refresh_token_lifetime,
    )


@beartype
def get_oauth2_server(
    store: Annotated[CredentialStore, Depends(get_credential_store)],
    issuer: Annotated[TokenIssuer, Depends(get_token_issuer)],
    hasher: Annotated[CredentialHasher, Depends(get_hasher)],
) -> OAuth2Server:
    """Get OAuth2 server instance."""
    return OAuth2Server(store, issuer, hasher)


@beartype
def get_account_service(
    store: Annotated[CredentialStore, Depends(get_credential_store)],
    hasher: Annotated[CredentialHasher, Depends(get_hasher)],
) -> AccountService:
    """Get account service instance."""
    return AccountService(store, hasher)


def require_scope(
    scope: str | None = None,
) -> Callable[..., Awaitable[TokenPair]]:
    """Build a dependency that admits only valid bearer tokens.

    Args:
        scope: Scope the token must satisfy, or None for any valid token

    Returns:
        Dependency resolving to the caller's token pair
    """

    @beartype
    async def dependency(
        credentials: Annotated[
            HTTPAuthorizationCredentials | None, Security(security)
        ],
        server: Annotated[OAuth2Server, Depends(get_oauth2_server)],
    ) -> TokenPair:
        token = credentials.credentials if credentials else None
        result = await server.authenticate_bearer(token, scope)
        if result.is_err():
            # NOTE: This is a dependency function, not an endpoint
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authentication credentials",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return result.unwrap()

    return dependency


CurrentToken = Annotated[TokenPair, Depends(require_scope())]
