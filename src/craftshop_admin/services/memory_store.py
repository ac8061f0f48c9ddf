"""In-process credential store.

Used by the test suite and for running the API without PostgreSQL. Writes
are serialised through one ``asyncio.Lock``; a failed transaction restores
the snapshot taken when it started.
"""

import asyncio
import contextlib
from collections.abc import AsyncIterator
from contextvars import ContextVar
from uuid import UUID

from beartype import beartype

from ..core.auth.oauth2.errors import StoreFailure
from ..core.logging_utils import get_logger
from ..models.auth import Client, User, UserCredential, UserToken

logger = get_logger(__name__)

_Snapshot = tuple[
    dict[UUID, Client],
    dict[int, User],
    dict[UUID, UserCredential],
    dict[str, UserToken],
    int,
]


class InMemoryCredentialStore:
    """Dictionary-backed credential store with snapshot rollback."""

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._clients: dict[UUID, Client] = {}
        self._users: dict[int, User] = {}
        self._credentials: dict[UUID, UserCredential] = {}
        self._tokens: dict[str, UserToken] = {}
        self._next_user_id = 1
        self._lock = asyncio.Lock()
        self._depth: ContextVar[int] = ContextVar(
            f"memory_store_depth_{id(self)}", default=0
        )

    def _snapshot(self) -> _Snapshot:
        return (
            dict(self._clients),
            dict(self._users),
            dict(self._credentials),
            dict(self._tokens),
            self._next_user_id,
        )

    def _restore(self, snapshot: _Snapshot) -> None:
        (
            self._clients,
            self._users,
            self._credentials,
            self._tokens,
            self._next_user_id,
        ) = snapshot

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Serialise writers; roll back every change if the body raises."""
        depth = self._depth.get()
        if depth > 0:
            snapshot = self._snapshot()
            token = self._depth.set(depth + 1)
            try:
                yield
            except BaseException:
                self._restore(snapshot)
                raise
            finally:
                self._depth.reset(token)
            return

        async with self._lock:
            snapshot = self._snapshot()
            token = self._depth.set(1)
            try:
                yield
            except BaseException:
                logger.info("Rolling back in-memory transaction")
                self._restore(snapshot)
                raise
            finally:
                self._depth.reset(token)

    # Clients

    @beartype
    async def get_client_by_client_id(self, client_id: str) -> Client | None:
        """Look up a client by its public identifier."""
        for client in self._clients.values():
            if client.client_id == client_id:
                return client
        return None

    @beartype
    async def get_client(self, id: UUID) -> Client | None:
        """Look up a client by its internal id."""
        return self._clients.get(id)

    @beartype
    async def create_client(self, client: Client) -> Client:
        """Insert a client; ``client_id`` must be unique."""
        async with self.transaction():
            if await self.get_client_by_client_id(client.client_id) is not None:
                raise StoreFailure(f"Duplicate client_id: {client.client_id}")
            self._clients[client.id] = client
        return client

    # Users

    @beartype
    async def get_user(self, user_id: int) -> User | None:
        """Look up a user by id, credentials loaded."""
        user = self._users.get(user_id)
        if user is None:
            return None
        return user.model_copy(
            update={"credentials": await self.get_credentials_for_user(user_id)}
        )

    @beartype
    async def get_user_by_username(self, username: str) -> User | None:
        """Look up the user owning a username, with that credential loaded."""
        credential = await self.get_credential_by_username(username)
        if credential is None:
            return None
        user = self._users.get(credential.user_id)
        if user is None:
            return None
        return user.model_copy(update={"credentials": (credential,)})

    @beartype
    async def create_user(self, *, name: str, email: str, scope: str) -> User:
        """Insert a user with the next sequential id."""
        async with self.transaction():
            user = User(id=self._next_user_id, name=name, email=email, scope=scope)
            self._next_user_id += 1
            self._users[user.id] = user
        return user

    @beartype
    async def update_user(self, user: User) -> User:
        """Persist name, email and scope of an existing user."""
        async with self.transaction():
            if user.id not in self._users:
                raise StoreFailure(f"User {user.id} does not exist")
            self._users[user.id] = user.model_copy(update={"credentials": ()})
        return user

    # Credentials

    @beartype
    async def get_credential_by_username(self, username: str) -> UserCredential | None:
        """Look up a credential by username."""
        for credential in self._credentials.values():
            if credential.username == username:
                return credential
        return None

    @beartype
    async def get_credentials_for_user(
        self, user_id: int
    ) -> tuple[UserCredential, ...]:
        """All credentials owned by a user."""
        return tuple(c for c in self._credentials.values() if c.user_id == user_id)

    @beartype
    async def save_credential(self, credential: UserCredential) -> UserCredential:
        """Insert a credential or overwrite the existing one with the same id."""
        async with self.transaction():
            if credential.user_id not in self._users:
                raise StoreFailure(f"User {credential.user_id} does not exist")
            existing = await self.get_credential_by_username(credential.username)
            if existing is not None and existing.id != credential.id:
                raise StoreFailure(f"Duplicate username: {credential.username}")
            self._credentials[credential.id] = credential
        return credential

    # Tokens

    @beartype
    async def create_token(self, token: UserToken) -> UserToken:
        """Insert an issued token pair; ``access_token`` must be unique."""
        async with self.transaction():
            if token.access_token in self._tokens:
                raise StoreFailure("Duplicate access token")
            self._tokens[token.access_token] = token
        return token

    @beartype
    async def get_token_by_access_token(self, access_token: str) -> UserToken | None:
        """Exact-match lookup on the access token."""
        return self._tokens.get(access_token)

    @beartype
    async def get_token_by_refresh_token(
        self, refresh_token: str
    ) -> UserToken | None:
        """Exact-match lookup on the refresh token."""
        for token in self._tokens.values():
            if token.refresh_token is not None and token.refresh_token == refresh_token:
                return token
        return None

    @beartype
    async def find_token(self, access_token: str, user_id: int) -> UserToken | None:
        """Look up a token row by access token and owning user."""
        token = self._tokens.get(access_token)
        if token is None or token.user_id != user_id:
            return None
        return token

    @beartype
    async def delete_token(self, access_token: str) -> bool:
        """Delete a token row; report whether one existed."""
        async with self.transaction():
            return self._tokens.pop(access_token, None) is not None
