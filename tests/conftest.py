"""Test configuration and fixtures.

Every test gets a fresh in-memory credential store and a frozen clock so
token expiry can be driven deterministically.
"""

import pytest
import pytest_asyncio

from craftshop_admin.core.auth.oauth2.hasher import CredentialHasher
from craftshop_admin.core.auth.oauth2.server import OAuth2Server
from craftshop_admin.core.auth.oauth2.tokens import TokenIssuer
from craftshop_admin.core.config import Settings
from craftshop_admin.services.memory_store import InMemoryCredentialStore
from tests.fixtures.test_data import (
    TEST_JWT_SECRET,
    FrozenClock,
    Seeded,
    seed_client,
    seed_user,
)

# Configure pytest-asyncio
pytest_plugins = ["pytest_asyncio"]


@pytest.fixture
def clock() -> FrozenClock:
    """Frozen clock shared by issuer and server."""
    return FrozenClock()


@pytest.fixture
def hasher() -> CredentialHasher:
    """Password hasher with production parameters."""
    return CredentialHasher()


@pytest.fixture
def issuer(clock: FrozenClock) -> TokenIssuer:
    """Token issuer driven by the frozen clock."""
    return TokenIssuer(TEST_JWT_SECRET, "HS256", clock=clock)


@pytest.fixture
def store() -> InMemoryCredentialStore:
    """Empty in-memory credential store."""
    return InMemoryCredentialStore()


@pytest.fixture
def server(
    store: InMemoryCredentialStore,
    issuer: TokenIssuer,
    hasher: CredentialHasher,
    clock: FrozenClock,
) -> OAuth2Server:
    """Grant engine over the in-memory store."""
    return OAuth2Server(store, issuer, hasher, clock=clock)


@pytest_asyncio.fixture
async def seeded(store: InMemoryCredentialStore, hasher: CredentialHasher) -> Seeded:
    """Client ``shop``/``s3cr3t`` and operator ``alice``, both operator-scoped."""
    client = await seed_client(store)
    user, credential = await seed_user(store, hasher)
    return Seeded(
        client=client,
        user=user,
        credential=credential,
        password="correct-password",
    )


@pytest.fixture
def test_settings() -> Settings:
    """Settings for app tests; bootstrap disabled."""
    return Settings(
        jwt_secret=TEST_JWT_SECRET,
        bootstrap_on_startup=False,
        log_level="DEBUG",
    )
