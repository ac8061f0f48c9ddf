"""First-run seeding of operator accounts and registered clients."""

from collections.abc import Sequence

from attrs import field, frozen
from beartype import beartype

from ..core.auth.oauth2.hasher import CredentialHasher
from ..core.auth.oauth2.scopes import ScopeType
from ..core.config import ClientSeed, OperatorSeed, Settings
from ..core.logging_utils import get_logger
from ..models.auth import Client, UserCredential
from .credential_store import CredentialStore

logger = get_logger(__name__)


@frozen
class BootstrapReport:
    """What a bootstrap run created and what it found already present."""

    operators_created: tuple[str, ...] = field(default=())
    operators_skipped: tuple[str, ...] = field(default=())
    clients_created: tuple[str, ...] = field(default=())
    clients_skipped: tuple[str, ...] = field(default=())


class Bootstrapper:
    """Idempotently ensure configured operators and clients exist."""

    def __init__(
        self,
        store: CredentialStore,
        hasher: CredentialHasher,
        *,
        default_access_token_lifetime: int = 3600,
        default_refresh_token_lifetime: int = 7200,
    ) -> None:
        """Initialize bootstrapper.

        Args:
            store: Credential store to seed
            hasher: Hasher applied to seed passwords
            default_access_token_lifetime: Used for clients without one
            default_refresh_token_lifetime: Used for clients without one
        """
        self._store = store
        self._hasher = hasher
        self._default_access = default_access_token_lifetime
        self._default_refresh = default_refresh_token_lifetime

    @beartype
    async def ensure_operator(self, seed: OperatorSeed) -> bool:
        """Create an operator account unless its username is taken.

        The user and credential are written in one transaction.

        Returns:
            True if the account was created
        """
        async with self._store.transaction():
            if await self._store.get_credential_by_username(seed.username) is not None:
                return False

            user = await self._store.create_user(
                name=seed.name, email=seed.email, scope=ScopeType.OPERATOR.value
            )
            await self._store.save_credential(
                UserCredential(
                    user_id=user.id,
                    username=seed.username,
                    password=self._hasher.hash(seed.password),
                )
            )
        logger.info("Created operator account %s", seed.username)
        return True

    @beartype
    async def ensure_client(self, seed: ClientSeed) -> bool:
        """Register a client unless its client_id is taken.

        Returns:
            True if the client was created
        """
        async with self._store.transaction():
            if await self._store.get_client_by_client_id(seed.client_id) is not None:
                return False

            await self._store.create_client(
                Client(
                    name=seed.name,
                    client_id=seed.client_id,
                    client_secret=seed.client_secret,
                    scope=seed.scope,
                    grants=tuple(seed.grants),
                    redirect_uris=tuple(seed.redirect_uris),
                    access_token_lifetime=seed.access_token_lifetime
                    or self._default_access,
                    refresh_token_lifetime=seed.refresh_token_lifetime
                    or self._default_refresh,
                )
            )
        logger.info("Registered client %s", seed.client_id)
        return True

    @beartype
    async def run(
        self,
        operators: Sequence[OperatorSeed],
        clients: Sequence[ClientSeed],
    ) -> BootstrapReport:
        """Ensure every operator and client exists.

        Each seed runs in its own transaction; a failure rolls back that seed
        and is re-raised.
        """
        created_ops: list[str] = []
        skipped_ops: list[str] = []
        for operator in operators:
            if await self.ensure_operator(operator):
                created_ops.append(operator.username)
            else:
                skipped_ops.append(operator.username)

        created_clients: list[str] = []
        skipped_clients: list[str] = []
        for client in clients:
            if await self.ensure_client(client):
                created_clients.append(client.client_id)
            else:
                skipped_clients.append(client.client_id)

        report = BootstrapReport(
            operators_created=tuple(created_ops),
            operators_skipped=tuple(skipped_ops),
            clients_created=tuple(created_clients),
            clients_skipped=tuple(skipped_clients),
        )
        logger.info(
            "Bootstrap complete: %d operators created, %d clients created",
            len(report.operators_created),
            len(report.clients_created),
        )
        return report


@beartype
async def bootstrap_from_settings(
    store: CredentialStore, settings: Settings
) -> BootstrapReport:
    """Seed the store from ``Settings.bootstrap_operators`` and ``bootstrap_clients``."""
    bootstrapper = Bootstrapper(
        store,
        CredentialHasher(settings.password_hash_iterations),
        default_access_token_lifetime=settings.client_access_token_lifetime,
        default_refresh_token_lifetime=settings.client_refresh_token_lifetime,
    )
    return await bootstrapper.run(
        settings.bootstrap_operators, settings.bootstrap_clients
    )
