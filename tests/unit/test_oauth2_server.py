"""Unit tests for the OAuth2 grant engine."""

import asyncio
from datetime import timedelta

import pytest

from craftshop_admin.core.auth.oauth2.errors import (
    ACCESS_DENIED,
    ACCESS_DENIED_DESCRIPTION,
    InvalidClient,
    InvalidCredential,
    InvalidRequest,
    InvalidScope,
    InvalidToken,
    StoreFailure,
    UnauthorizedClient,
    UnsupportedGrantType,
)
from craftshop_admin.core.auth.oauth2.grants import AuthorizationCodeGrant, Grant
from craftshop_admin.core.auth.oauth2.hasher import CredentialHasher
from craftshop_admin.core.auth.oauth2.server import OAuth2Server
from craftshop_admin.core.auth.oauth2.tokens import TokenIssuer
from craftshop_admin.models.auth import Client, TokenPair, UserToken
from craftshop_admin.schemas.auth import TokenRequest, TokenResponse
from craftshop_admin.services.memory_store import InMemoryCredentialStore
from tests.fixtures.test_data import (
    FIXED_NOW,
    FrozenClock,
    Seeded,
    seed_client,
    seed_user,
    token_rows,
)


def password_request(**overrides: str | None) -> TokenRequest:
    values: dict[str, str | None] = {
        "grant_type": "password",
        "client_id": "shop",
        "client_secret": "s3cr3t",
        "username": "alice",
        "password": "correct-password",
    }
    values.update(overrides)
    return TokenRequest(**values)


def refresh_request(refresh_token: str | None, **overrides: str | None) -> TokenRequest:
    values: dict[str, str | None] = {
        "grant_type": "refresh_token",
        "client_id": "shop",
        "client_secret": "s3cr3t",
        "refresh_token": refresh_token,
    }
    values.update(overrides)
    return TokenRequest(**values)


async def issue(server: OAuth2Server, **overrides: str | None) -> TokenResponse:
    result = await server.token(password_request(**overrides))
    assert result.is_ok(), result
    return result.unwrap()


class FailingTokenStore(InMemoryCredentialStore):
    """Store whose token inserts fail once armed."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_token_writes = False

    async def create_token(self, token: UserToken) -> UserToken:
        await super().create_token(token)
        if self.fail_token_writes:
            raise StoreFailure("simulated write failure")
        return token


class SlowRefreshLookupStore(InMemoryCredentialStore):
    """Store that yields to the event loop after every refresh-token read."""

    async def get_token_by_refresh_token(self, refresh_token: str) -> UserToken | None:
        token = await super().get_token_by_refresh_token(refresh_token)
        await asyncio.sleep(0)
        return token


class TestPasswordGrant:
    """Test resource-owner password credentials."""

    @pytest.mark.asyncio
    async def test_issues_bound_pair(self, server: OAuth2Server, seeded: Seeded) -> None:
        """Test tokens are issued, persisted and bound to alice and shop."""
        response = await issue(server)

        assert response.token_type == "Bearer"
        assert response.scope == "operator"
        assert response.expires_in == 3600
        assert response.refresh_token is not None

        by_access = await server.lookup_access_token(response.access_token)
        by_refresh = await server.lookup_refresh_token(response.refresh_token)
        assert by_access is not None and by_refresh is not None
        assert by_access.access_token == by_refresh.access_token
        assert by_access.user.id == seeded.user.id
        assert by_access.client.id == seeded.client.id
        assert by_access.access_token_expires_at == FIXED_NOW + timedelta(seconds=3600)
        assert by_access.refresh_token_expires_at == FIXED_NOW + timedelta(seconds=7200)
        assert server.issuer.verify_binding(
            response.access_token, seeded.client, seeded.user
        )

    @pytest.mark.asyncio
    async def test_fallback_lifetime_reported(
        self,
        server: OAuth2Server,
        store: InMemoryCredentialStore,
        hasher: CredentialHasher,
    ) -> None:
        """Test expires_in uses the fallback when the client has no lifetime."""
        await seed_client(store, access_token_lifetime=None, refresh_token_lifetime=None)
        await seed_user(store, hasher)

        response = await issue(server)

        assert response.expires_in == 600

    @pytest.mark.asyncio
    async def test_explicit_matching_scope(self, server: OAuth2Server, seeded: Seeded) -> None:
        """Test requesting exactly the client scope succeeds."""
        response = await issue(server, scope="operator")
        assert response.scope == "operator"

    @pytest.mark.asyncio
    async def test_other_scope_rejected(self, server: OAuth2Server, seeded: Seeded) -> None:
        """Test scope differing from the client scope is refused."""
        result = await server.token(password_request(scope="customer"))

        assert isinstance(result.unwrap_err(), InvalidScope)

    @pytest.mark.asyncio
    async def test_wrong_password_and_unknown_user_look_alike(
        self, server: OAuth2Server, seeded: Seeded
    ) -> None:
        """Test caller cannot tell a wrong password from an unknown user."""
        wrong_password = (
            await server.token(password_request(password="nope"))
        ).unwrap_err()
        unknown_user = (await server.token(password_request(username="mallory"))).unwrap_err()

        assert isinstance(wrong_password, InvalidCredential)
        assert isinstance(unknown_user, InvalidCredential)
        assert wrong_password.to_dict() == unknown_user.to_dict()
        assert wrong_password.to_dict() == {
            "error": ACCESS_DENIED,
            "error_description": ACCESS_DENIED_DESCRIPTION,
        }

    @pytest.mark.asyncio
    async def test_bad_client_looks_like_bad_user(
        self, server: OAuth2Server, seeded: Seeded
    ) -> None:
        """Test client failures share the public form of user failures."""
        bad_secret = (
            await server.token(password_request(client_secret="wrong"))
        ).unwrap_err()
        unknown_client = (
            await server.token(password_request(client_id="nobody"))
        ).unwrap_err()
        bad_user = (await server.token(password_request(password="nope"))).unwrap_err()

        assert isinstance(bad_secret, InvalidClient)
        assert isinstance(unknown_client, InvalidClient)
        assert bad_secret.to_dict() == unknown_client.to_dict() == bad_user.to_dict()

    @pytest.mark.asyncio
    async def test_client_checked_before_user(
        self, server: OAuth2Server, seeded: Seeded
    ) -> None:
        """Test a bad client fails even when the user credentials are right."""
        result = await server.token(password_request(client_secret=""))

        assert isinstance(result.unwrap_err(), InvalidClient)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing", ["username", "password"])
    async def test_missing_owner_credentials(
        self, server: OAuth2Server, seeded: Seeded, missing: str
    ) -> None:
        """Test absent username or password is an invalid request."""
        result = await server.token(password_request(**{missing: None}))

        assert isinstance(result.unwrap_err(), InvalidRequest)

    @pytest.mark.asyncio
    async def test_failed_attempts_store_nothing(
        self, server: OAuth2Server, store: InMemoryCredentialStore, seeded: Seeded
    ) -> None:
        """Test rejected requests leave no token rows."""
        await server.token(password_request(password="nope"))
        await server.token(password_request(client_secret="nope"))
        await server.token(password_request(scope="customer"))

        assert token_rows(store) == 0


class TestGrantSelection:
    """Test grant dispatch and per-client grant lists."""

    @pytest.mark.asyncio
    async def test_authorization_code_always_unsupported(
        self, server: OAuth2Server, seeded: Seeded
    ) -> None:
        """Test authorization_code fails before client authentication."""
        for secret in ("s3cr3t", "wrong"):
            result = await server.token(
                TokenRequest(
                    grant_type="authorization_code",
                    client_id="shop",
                    client_secret=secret,
                    code="abc",
                )
            )
            assert isinstance(result.unwrap_err(), UnsupportedGrantType)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("grant_type", ["implicit", "urn:example:unregistered"])
    async def test_unknown_grant_type(
        self, server: OAuth2Server, seeded: Seeded, grant_type: str
    ) -> None:
        """Test unknown types and unregistered extensions are unsupported."""
        result = await server.token(password_request(grant_type=grant_type))

        assert isinstance(result.unwrap_err(), UnsupportedGrantType)

    def test_grant_contract_is_abstract(self) -> None:
        """Test a grant without a handler cannot be built."""
        with pytest.raises(TypeError):
            Grant("password")  # type: ignore[abstract]

    @pytest.mark.asyncio
    async def test_authorization_code_handler_refuses(self, seeded: Seeded) -> None:
        """Test the disabled grant refuses even when invoked directly."""
        grant = AuthorizationCodeGrant()

        with pytest.raises(UnsupportedGrantType):
            grant.ensure_supported()
        with pytest.raises(UnsupportedGrantType):
            await grant.handle(
                None,  # type: ignore[arg-type]
                TokenRequest(grant_type="authorization_code"),
                seeded.client,
            )

    @pytest.mark.asyncio
    async def test_grant_not_enabled_for_client(
        self,
        server: OAuth2Server,
        store: InMemoryCredentialStore,
        hasher: CredentialHasher,
    ) -> None:
        """Test a client may only use grants on its list."""
        await seed_client(store, grants=("refresh_token",))
        await seed_user(store, hasher)

        error = (await server.token(password_request())).unwrap_err()

        assert isinstance(error, UnauthorizedClient)
        assert error.error == "unauthorized_client"
        assert error.public_error == ACCESS_DENIED

    @pytest.mark.asyncio
    async def test_client_credentials_denied(
        self,
        server: OAuth2Server,
        store: InMemoryCredentialStore,
    ) -> None:
        """Test no client has an associated user."""
        await seed_client(store, grants=("client_credentials",))

        result = await server.token(
            TokenRequest(
                grant_type="client_credentials", client_id="shop", client_secret="s3cr3t"
            )
        )

        assert isinstance(result.unwrap_err(), InvalidCredential)
        assert token_rows(store) == 0

    @pytest.mark.asyncio
    async def test_extension_grant_handler(
        self,
        store: InMemoryCredentialStore,
        issuer: TokenIssuer,
        hasher: CredentialHasher,
        clock: FrozenClock,
    ) -> None:
        """Test a registered extension grant issues through its handler."""
        grant_type = "urn:craftshop:params:oauth:grant-type:kiosk"

        async def kiosk(server: OAuth2Server, request: TokenRequest, client: Client) -> TokenPair:
            user = await server.store.get_user_by_username(request.username or "")
            if user is None:
                raise InvalidCredential("unknown kiosk user")
            return await server.issue_token(client, user, client.scope, include_refresh=False)

        server = OAuth2Server(
            store, issuer, hasher, clock=clock, extension_grants={grant_type: kiosk}
        )
        await seed_client(store, grants=(grant_type,))
        await seed_user(store, hasher)

        result = await server.token(
            TokenRequest(
                grant_type=grant_type,
                client_id="shop",
                client_secret="s3cr3t",
                username="alice",
            )
        )

        response = result.unwrap()
        assert response.refresh_token is None
        assert await server.lookup_access_token(response.access_token) is not None


class TestRefreshGrant:
    """Test refresh token rotation."""

    @pytest.mark.asyncio
    async def test_rotation_revokes_old_pair(
        self, server: OAuth2Server, store: InMemoryCredentialStore, seeded: Seeded
    ) -> None:
        """Test refreshing yields a new pair and retires the old one."""
        first = await issue(server)

        second = (await server.token(refresh_request(first.refresh_token))).unwrap()

        assert second.access_token != first.access_token
        assert second.refresh_token != first.refresh_token
        assert second.scope == first.scope
        assert await server.lookup_access_token(first.access_token) is None
        assert await server.lookup_refresh_token(first.refresh_token) is None
        assert await server.lookup_access_token(second.access_token) is not None
        assert token_rows(store) == 1

    @pytest.mark.asyncio
    async def test_refresh_token_single_use(self, server: OAuth2Server, seeded: Seeded) -> None:
        """Test a rotated refresh token cannot be replayed."""
        first = await issue(server)
        await server.token(refresh_request(first.refresh_token))

        replay = await server.token(refresh_request(first.refresh_token))

        assert isinstance(replay.unwrap_err(), InvalidCredential)

    @pytest.mark.asyncio
    async def test_expired_refresh_token(
        self, server: OAuth2Server, clock: FrozenClock, seeded: Seeded
    ) -> None:
        """Test refresh fails once the refresh expiry has passed."""
        first = await issue(server)
        clock.advance(7200)

        result = await server.token(refresh_request(first.refresh_token))

        assert isinstance(result.unwrap_err(), InvalidCredential)

    @pytest.mark.asyncio
    async def test_refresh_after_access_expiry(
        self, server: OAuth2Server, clock: FrozenClock, seeded: Seeded
    ) -> None:
        """Test refresh still works after the access token expired."""
        first = await issue(server)
        clock.advance(3601)

        result = await server.token(refresh_request(first.refresh_token))

        assert result.is_ok()

    @pytest.mark.asyncio
    async def test_refresh_from_other_client(
        self, server: OAuth2Server, store: InMemoryCredentialStore, seeded: Seeded
    ) -> None:
        """Test a refresh token only works for the client it was issued to."""
        first = await issue(server)
        await seed_client(store, client_id="kiosk", client_secret="k10sk")

        result = await server.token(
            refresh_request(first.refresh_token, client_id="kiosk", client_secret="k10sk")
        )

        assert isinstance(result.unwrap_err(), InvalidCredential)
        assert await server.lookup_access_token(first.access_token) is not None

    @pytest.mark.asyncio
    async def test_refresh_scope_must_match(self, server: OAuth2Server, seeded: Seeded) -> None:
        """Test a refresh may not change the scope."""
        first = await issue(server)

        result = await server.token(refresh_request(first.refresh_token, scope="customer"))

        assert isinstance(result.unwrap_err(), InvalidScope)

    @pytest.mark.asyncio
    async def test_unknown_and_missing_refresh_token(
        self, server: OAuth2Server, seeded: Seeded
    ) -> None:
        """Test garbage and absent refresh tokens are rejected."""
        unknown = await server.token(refresh_request("not-a-token"))
        missing = await server.token(refresh_request(None))

        assert isinstance(unknown.unwrap_err(), InvalidCredential)
        assert isinstance(missing.unwrap_err(), InvalidRequest)

    @pytest.mark.asyncio
    async def test_concurrent_refresh_spends_token_once(
        self, issuer: TokenIssuer, hasher: CredentialHasher, clock: FrozenClock
    ) -> None:
        """Test two simultaneous refreshes with one token mint a single pair."""
        store = SlowRefreshLookupStore()
        server = OAuth2Server(store, issuer, hasher, clock=clock)
        await seed_client(store)
        await seed_user(store, hasher)
        first = await issue(server)

        results = await asyncio.gather(
            server.token(refresh_request(first.refresh_token)),
            server.token(refresh_request(first.refresh_token)),
        )

        succeeded = [result.unwrap() for result in results if result.is_ok()]
        failed = [result.unwrap_err() for result in results if result.is_err()]
        assert len(succeeded) == 1
        assert len(failed) == 1
        assert isinstance(failed[0], InvalidCredential)
        assert token_rows(store) == 1
        assert await server.lookup_access_token(succeeded[0].access_token) is not None


class TestTransactions:
    """Test store failures roll back and propagate."""

    @pytest.mark.asyncio
    async def test_failed_insert_leaves_no_token(
        self, issuer: TokenIssuer, hasher: CredentialHasher, clock: FrozenClock
    ) -> None:
        """Test a failing token write is rolled back and raised."""
        store = FailingTokenStore()
        server = OAuth2Server(store, issuer, hasher, clock=clock)
        await seed_client(store)
        await seed_user(store, hasher)
        store.fail_token_writes = True

        with pytest.raises(StoreFailure):
            await server.token(password_request())

        assert token_rows(store) == 0

    @pytest.mark.asyncio
    async def test_failed_rotation_keeps_old_pair(
        self, issuer: TokenIssuer, hasher: CredentialHasher, clock: FrozenClock
    ) -> None:
        """Test the old pair survives when the replacement cannot be stored."""
        store = FailingTokenStore()
        server = OAuth2Server(store, issuer, hasher, clock=clock)
        await seed_client(store)
        await seed_user(store, hasher)
        first = await issue(server)
        store.fail_token_writes = True

        with pytest.raises(StoreFailure):
            await server.token(refresh_request(first.refresh_token))

        assert token_rows(store) == 1
        assert await server.lookup_refresh_token(first.refresh_token) is not None


class TestRevocation:
    """Test token revocation."""

    @pytest.mark.asyncio
    async def test_revoke_is_idempotent(
        self, server: OAuth2Server, store: InMemoryCredentialStore, seeded: Seeded
    ) -> None:
        """Test revoking twice succeeds both times."""
        response = await issue(server)
        pair = await server.lookup_access_token(response.access_token)
        assert pair is not None

        assert await server.revoke_token(pair) is True
        assert await server.revoke_token(pair) is True
        assert await server.lookup_access_token(response.access_token) is None
        assert token_rows(store) == 0

    @pytest.mark.asyncio
    async def test_authorization_code_storage_is_inert(
        self, server: OAuth2Server, seeded: Seeded
    ) -> None:
        """Test authorization code hooks never hold anything."""
        assert await server.save_authorization_code("c", seeded.client, seeded.user) is None
        assert await server.get_authorization_code("c") is None
        assert await server.revoke_authorization_code("c") is False


class TestBearerAuthentication:
    """Test the protected-operation boundary."""

    @pytest.mark.asyncio
    async def test_valid_token_without_requirement(
        self, server: OAuth2Server, seeded: Seeded
    ) -> None:
        """Test a fresh token passes when no scope is required."""
        response = await issue(server)

        pair = (await server.authenticate_bearer(response.access_token)).unwrap()

        assert pair.user.id == seeded.user.id

    @pytest.mark.asyncio
    async def test_customer_token_on_customer_route(
        self,
        server: OAuth2Server,
        store: InMemoryCredentialStore,
        hasher: CredentialHasher,
    ) -> None:
        """Test customer token from a customer client passes a customer check."""
        await seed_client(store, scope="customer")
        await seed_user(store, hasher, scope="customer")
        response = await issue(server)

        assert (await server.authenticate_bearer(response.access_token, "customer")).is_ok()
        assert (
            await server.authenticate_bearer(response.access_token, "operator")
        ).is_err()

    @pytest.mark.asyncio
    async def test_failures_are_indistinguishable(
        self, server: OAuth2Server, clock: FrozenClock, seeded: Seeded
    ) -> None:
        """Test unknown, wrong-scope and expired tokens fail the same way."""
        response = await issue(server)

        unknown = (await server.authenticate_bearer("not-a-token")).unwrap_err()
        missing = (await server.authenticate_bearer(None)).unwrap_err()
        wrong_scope = (
            await server.authenticate_bearer(response.access_token, "customer")
        ).unwrap_err()
        clock.advance(3600)
        expired = (await server.authenticate_bearer(response.access_token)).unwrap_err()

        errors = [unknown, missing, wrong_scope, expired]
        assert all(isinstance(e, InvalidToken) for e in errors)
        assert len({str(e) for e in errors}) == 1
        assert all(e.status_code == 401 for e in errors)

    @pytest.mark.asyncio
    async def test_revoked_token_rejected(self, server: OAuth2Server, seeded: Seeded) -> None:
        """Test a revoked token no longer authenticates."""
        response = await issue(server)
        pair = (await server.authenticate_bearer(response.access_token)).unwrap()
        await server.revoke_token(pair)

        assert (await server.authenticate_bearer(response.access_token)).is_err()
