"""Credential store: the persistence port used by the grant engine.

``CredentialStore`` is the interface; ``PostgresCredentialStore`` implements
it over the asyncpg pool. Calls made inside ``transaction()`` on the same task
share one connection; a nested ``transaction()`` becomes a savepoint.
"""

import contextlib
from collections.abc import AsyncIterator
from contextvars import ContextVar
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

import asyncpg
from beartype import beartype

from ..core.auth.oauth2.errors import StoreFailure
from ..core.database import Database
from ..core.logging_utils import get_logger
from ..models.auth import Client, User, UserCredential, UserToken

logger = get_logger(__name__)


@runtime_checkable
class CredentialStore(Protocol):
    """Lookup/insert/update/delete over clients, users, credentials and tokens."""

    def transaction(self) -> contextlib.AbstractAsyncContextManager[None]:
        """Scope an atomic unit of work; any exception rolls it back."""
        ...

    async def get_client_by_client_id(self, client_id: str) -> Client | None: ...

    async def get_client(self, id: UUID) -> Client | None: ...

    async def create_client(self, client: Client) -> Client: ...

    async def get_user(self, user_id: int) -> User | None: ...

    async def get_user_by_username(self, username: str) -> User | None:
        """Return the user owning ``username`` with that credential loaded."""
        ...

    async def create_user(self, *, name: str, email: str, scope: str) -> User: ...

    async def update_user(self, user: User) -> User: ...

    async def get_credential_by_username(
        self, username: str
    ) -> UserCredential | None: ...

    async def get_credentials_for_user(
        self, user_id: int
    ) -> tuple[UserCredential, ...]: ...

    async def save_credential(self, credential: UserCredential) -> UserCredential:
        """Insert or overwrite a credential; ``password`` is stored as given."""
        ...

    async def create_token(self, token: UserToken) -> UserToken: ...

    async def get_token_by_access_token(self, access_token: str) -> UserToken | None: ...

    async def get_token_by_refresh_token(
        self, refresh_token: str
    ) -> UserToken | None: ...

    async def find_token(self, access_token: str, user_id: int) -> UserToken | None: ...

    async def delete_token(self, access_token: str) -> bool: ...


_CLIENT_COLUMNS = """
    id, name, client_id, client_secret, scope, grants, redirect_uris,
    access_token_lifetime, refresh_token_lifetime
"""
_USER_COLUMNS = "id, name, email, scope"
_CREDENTIAL_COLUMNS = "id, user_id, username, password"
_TOKEN_COLUMNS = """
    access_token, refresh_token, expired_in, refresh_expired_in,
    scope, user_id, client_id
"""


class PostgresCredentialStore:
    """asyncpg-backed credential store."""

    def __init__(self, db: Database) -> None:
        """Initialize store.

        Args:
            db: Connected database pool wrapper
        """
        self._db = db
        self._conn: ContextVar[Any] = ContextVar(
            f"credential_store_conn_{id(self)}", default=None
        )

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Run the enclosed calls in one transaction on one connection."""
        conn = self._conn.get()
        try:
            if conn is not None:
                async with conn.transaction():
                    yield
                return

            async with self._db.acquire() as conn:
                async with conn.transaction():
                    token = self._conn.set(conn)
                    try:
                        yield
                    finally:
                        self._conn.reset(token)
        except (asyncpg.PostgresError, OSError) as e:
            logger.error("Credential store transaction failed: %s", e)
            raise StoreFailure(f"Transaction failed: {e}") from e

    @contextlib.asynccontextmanager
    async def _connection(self) -> AsyncIterator[Any]:
        conn = self._conn.get()
        if conn is not None:
            yield conn
            return
        async with self._db.acquire() as conn:
            yield conn

    async def _fetchrow(self, query: str, *args: Any) -> Any:
        try:
            async with self._connection() as conn:
                return await conn.fetchrow(query, *args)
        except (asyncpg.PostgresError, OSError) as e:
            logger.error("Credential store query failed: %s", e)
            raise StoreFailure(f"Query failed: {e}") from e

    async def _fetch(self, query: str, *args: Any) -> list[Any]:
        try:
            async with self._connection() as conn:
                return await conn.fetch(query, *args)
        except (asyncpg.PostgresError, OSError) as e:
            logger.error("Credential store query failed: %s", e)
            raise StoreFailure(f"Query failed: {e}") from e

    async def _execute(self, query: str, *args: Any) -> str:
        try:
            async with self._connection() as conn:
                return await conn.execute(query, *args)
        except (asyncpg.PostgresError, OSError) as e:
            logger.error("Credential store command failed: %s", e)
            raise StoreFailure(f"Command failed: {e}") from e

    # Clients

    @beartype
    async def get_client_by_client_id(self, client_id: str) -> Client | None:
        """Look up a client by its public identifier."""
        row = await self._fetchrow(
            f"SELECT {_CLIENT_COLUMNS} FROM clients WHERE client_id = $1",
            client_id,
        )
        return Client(**dict(row)) if row else None

    @beartype
    async def get_client(self, id: UUID) -> Client | None:
        """Look up a client by its internal id."""
        row = await self._fetchrow(
            f"SELECT {_CLIENT_COLUMNS} FROM clients WHERE id = $1", id
        )
        return Client(**dict(row)) if row else None

    @beartype
    async def create_client(self, client: Client) -> Client:
        """Insert a client."""
        await self._execute(
            """
            INSERT INTO clients (
                id, name, client_id, client_secret, scope, grants,
                redirect_uris, access_token_lifetime, refresh_token_lifetime
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            """,
            client.id,
            client.name,
            client.client_id,
            client.client_secret,
            client.scope,
            list(client.grants),
            list(client.redirect_uris),
            client.access_token_lifetime,
            client.refresh_token_lifetime,
        )
        return client

    # Users

    @beartype
    async def get_user(self, user_id: int) -> User | None:
        """Look up a user by id, credentials loaded."""
        row = await self._fetchrow(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = $1", user_id
        )
        if not row:
            return None
        credentials = await self.get_credentials_for_user(user_id)
        return User(**dict(row), credentials=credentials)

    @beartype
    async def get_user_by_username(self, username: str) -> User | None:
        """Look up the user owning a username, with that credential loaded."""
        credential = await self.get_credential_by_username(username)
        if credential is None:
            return None
        row = await self._fetchrow(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = $1", credential.user_id
        )
        if not row:
            return None
        return User(**dict(row), credentials=(credential,))

    @beartype
    async def create_user(self, *, name: str, email: str, scope: str) -> User:
        """Insert a user and return it with its generated id."""
        row = await self._fetchrow(
            f"""
            INSERT INTO users (name, email, scope)
            VALUES ($1, $2, $3)
            RETURNING {_USER_COLUMNS}
            """,
            name,
            email,
            scope,
        )
        return User(**dict(row))

    @beartype
    async def update_user(self, user: User) -> User:
        """Persist name, email and scope of an existing user."""
        await self._execute(
            """
            UPDATE users SET name = $2, email = $3, scope = $4, updated_at = now()
            WHERE id = $1
            """,
            user.id,
            user.name,
            user.email,
            user.scope,
        )
        return user

    # Credentials

    @beartype
    async def get_credential_by_username(self, username: str) -> UserCredential | None:
        """Look up a credential by username."""
        row = await self._fetchrow(
            f"SELECT {_CREDENTIAL_COLUMNS} FROM user_credentials WHERE username = $1",
            username,
        )
        return UserCredential(**dict(row)) if row else None

    @beartype
    async def get_credentials_for_user(
        self, user_id: int
    ) -> tuple[UserCredential, ...]:
        """All credentials owned by a user."""
        rows = await self._fetch(
            f"""
            SELECT {_CREDENTIAL_COLUMNS} FROM user_credentials
            WHERE user_id = $1 ORDER BY created_at
            """,
            user_id,
        )
        return tuple(UserCredential(**dict(row)) for row in rows)

    @beartype
    async def save_credential(self, credential: UserCredential) -> UserCredential:
        """Insert a credential or overwrite the existing row with the same id."""
        await self._execute(
            """
            INSERT INTO user_credentials (id, user_id, username, password)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (id) DO UPDATE
            SET username = EXCLUDED.username,
                password = EXCLUDED.password,
                updated_at = now()
            """,
            credential.id,
            credential.user_id,
            credential.username,
            credential.password,
        )
        return credential

    # Tokens

    @beartype
    async def create_token(self, token: UserToken) -> UserToken:
        """Insert an issued token pair."""
        await self._execute(
            """
            INSERT INTO user_tokens (
                access_token, refresh_token, expired_in, refresh_expired_in,
                scope, user_id, client_id
            ) VALUES ($1, $2, $3, $4, $5, $6, $7)
            """,
            token.access_token,
            token.refresh_token,
            token.expired_in,
            token.refresh_expired_in,
            token.scope,
            token.user_id,
            token.client_id,
        )
        return token

    @beartype
    async def get_token_by_access_token(self, access_token: str) -> UserToken | None:
        """Exact-match lookup on the access token."""
        row = await self._fetchrow(
            f"SELECT {_TOKEN_COLUMNS} FROM user_tokens WHERE access_token = $1",
            access_token,
        )
        return UserToken(**dict(row)) if row else None

    @beartype
    async def get_token_by_refresh_token(
        self, refresh_token: str
    ) -> UserToken | None:
        """Exact-match lookup on the refresh token."""
        row = await self._fetchrow(
            f"SELECT {_TOKEN_COLUMNS} FROM user_tokens WHERE refresh_token = $1",
            refresh_token,
        )
        return UserToken(**dict(row)) if row else None

    @beartype
    async def find_token(self, access_token: str, user_id: int) -> UserToken | None:
        """Look up a token row by access token and owning user."""
        row = await self._fetchrow(
            f"""
            SELECT {_TOKEN_COLUMNS} FROM user_tokens
            WHERE access_token = $1 AND user_id = $2
            """,
            access_token,
            user_id,
        )
        return UserToken(**dict(row)) if row else None

    @beartype
    async def delete_token(self, access_token: str) -> bool:
        """Delete a token row; report whether one existed."""
        status = await self._execute(
            "DELETE FROM user_tokens WHERE access_token = $1", access_token
        )
        return status.endswith(" 1")
