"""Access-control entities: clients, users, credentials and issued tokens."""

from datetime import datetime
from uuid import UUID, uuid4

from pydantic import Field

from .base import BaseModelConfig

CUSTOMER_SCOPE = "customer"
OPERATOR_SCOPE = "operator"


class Client(BaseModelConfig):
    """A registered API consumer."""

    id: UUID = Field(default_factory=uuid4, description="Internal identifier")
    name: str = Field(..., min_length=1)
    client_id: str = Field(..., min_length=1, description="Public identifier")
    client_secret: str = Field(..., min_length=1)
    scope: str = Field(default=CUSTOMER_SCOPE, description="Scope tokens are minted with")
    grants: tuple[str, ...] = Field(default=("password", "refresh_token"))
    redirect_uris: tuple[str, ...] = Field(default=())
    access_token_lifetime: int | None = Field(default=3600, ge=1)
    refresh_token_lifetime: int | None = Field(default=7200, ge=1)


class UserCredential(BaseModelConfig):
    """Login credential; ``password`` always holds ``salt:derivedKey``."""

    id: UUID = Field(default_factory=uuid4)
    user_id: int = Field(..., ge=1)
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1, description="Stored hash, never plaintext")


class User(BaseModelConfig):
    """A human account."""

    id: int = Field(..., ge=1)
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    scope: str = Field(default=CUSTOMER_SCOPE)
    credentials: tuple[UserCredential, ...] = Field(
        default=(), description="Loaded credential relation"
    )


class UserToken(BaseModelConfig):
    """A persisted token pair row."""

    access_token: str = Field(..., min_length=1)
    refresh_token: str | None = None
    expired_in: datetime
    refresh_expired_in: datetime | None = None
    scope: str
    user_id: int
    client_id: UUID = Field(..., description="Owning client's internal id")


class TokenPair(BaseModelConfig):
    """Issued tokens together with the client and user they belong to."""

    access_token: str
    access_token_expires_at: datetime
    refresh_token: str | None = None
    refresh_token_expires_at: datetime | None = None
    scope: str
    client: Client
    user: User

    @classmethod
    def from_row(cls, token: UserToken, client: Client, user: User) -> "TokenPair":
        """Join a stored token row with its owners."""
        return cls(
            access_token=token.access_token,
            access_token_expires_at=token.expired_in,
            refresh_token=token.refresh_token,
            refresh_token_expires_at=token.refresh_expired_in,
            scope=token.scope,
            client=client,
            user=user,
        )

    def to_row(self) -> UserToken:
        """Project back to the stored row shape."""
        return UserToken(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expired_in=self.access_token_expires_at,
            refresh_expired_in=self.refresh_token_expires_at,
            scope=self.scope,
            user_id=self.user.id,
            client_id=self.client.id,
        )
