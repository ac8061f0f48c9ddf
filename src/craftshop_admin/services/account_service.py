"""Account business logic: profile, password change and sign-out."""

from beartype import beartype

from ..core.auth.oauth2.errors import (
    GrantRejection,
    InvalidCredential,
    InvalidRequest,
    NotFound,
)
from ..core.auth.oauth2.hasher import CredentialHasher
from ..core.logging_utils import get_logger
from ..core.result_types import Err, Ok, Result
from ..models.auth import TokenPair, User
from ..schemas.auth import CurrentUser, UpdateUserRequest
from .credential_store import CredentialStore

logger = get_logger(__name__)

NOTHING_TO_CHANGE = "There is no value to be changed."
PASSWORD_MISMATCH = "Not Matched old password"


class AccountService:
    """Operations a signed-in user performs on their own account."""

    def __init__(self, store: CredentialStore, hasher: CredentialHasher) -> None:
        """Initialize account service."""
        self._store = store
        self._hasher = hasher

    @beartype
    async def me(self, token: TokenPair) -> Result[CurrentUser, GrantRejection]:
        """Describe the token's owner as currently stored."""
        user = await self._store.get_user(token.user.id)
        if user is None:
            return Err(NotFound("User no longer exists"))
        return Ok(self.to_current_user(user))

    @staticmethod
    @beartype
    def to_current_user(user: User) -> CurrentUser:
        """Project a user onto the public profile shape."""
        return CurrentUser(
            id=user.id,
            name=user.name,
            email=user.email,
            scope=user.scope,
            username=user.credentials[0].username if user.credentials else None,
        )

    @beartype
    async def update_profile(
        self, token: TokenPair, changes: UpdateUserRequest
    ) -> Result[CurrentUser, GrantRejection]:
        """Change name and/or email; the stored password hash is untouched."""
        if changes.is_empty:
            return Err(InvalidRequest(NOTHING_TO_CHANGE))

        user = await self._store.get_user(token.user.id)
        if user is None:
            return Err(NotFound("User no longer exists"))

        update: dict[str, str] = {}
        if changes.name:
            update["name"] = changes.name
        if changes.email:
            update["email"] = changes.email

        updated = await self._store.update_user(user.model_copy(update=update))
        logger.info("Updated profile of user %s (%s)", user.id, ", ".join(update))
        return Ok(self.to_current_user(updated))

    @beartype
    async def change_password(
        self,
        token: TokenPair,
        old_password: str | None,
        new_password: str | None,
    ) -> Result[None, GrantRejection]:
        """Replace the user's password after checking the current one.

        The new hash overwrites the first credential in place.
        """
        if not old_password or not new_password:
            return Err(InvalidRequest("old_password and new_password are required"))

        async with self._store.transaction():
            credentials = await self._store.get_credentials_for_user(token.user.id)
            if not credentials:
                return Err(NotFound("No credential for user"))

            credential = credentials[0]
            if not self._hasher.verify(credential.password, old_password):
                logger.info("Password change rejected for user %s", token.user.id)
                return Err(InvalidCredential(PASSWORD_MISMATCH))

            await self._store.save_credential(
                credential.model_copy(
                    update={"password": self._hasher.hash(new_password)}
                )
            )

        logger.info("Changed password of user %s", token.user.id)
        return Ok(None)

    @beartype
    async def signout(self, token: TokenPair) -> bool:
        """Delete the presented access token's row."""
        deleted = await self._store.delete_token(token.access_token)
        logger.info("User %s signed out", token.user.id)
        return deleted
