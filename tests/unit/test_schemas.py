"""Unit tests for Pydantic schemas."""

import pytest
from pydantic import ValidationError

from craftshop_admin.schemas.auth import TokenRequest, TokenResponse, UpdateUserRequest


class TestTokenRequest:
    """Test TokenRequest schema."""

    def test_secrets_not_stripped(self) -> None:
        """Test credentials are kept verbatim."""
        request = TokenRequest(grant_type="password", password=" pw ", client_secret=" s ")

        assert request.password == " pw "
        assert request.client_secret == " s "

    def test_grant_type_required(self) -> None:
        """Test grant_type cannot be empty."""
        with pytest.raises(ValidationError):
            TokenRequest(grant_type="")


class TestTokenResponse:
    """Test TokenResponse schema."""

    def test_bearer_default(self) -> None:
        """Test token_type defaults to Bearer."""
        response = TokenResponse(access_token="a", expires_in=600, scope="customer")

        assert response.token_type == "Bearer"
        assert response.refresh_token is None


class TestUpdateUserRequest:
    """Test UpdateUserRequest schema."""

    def test_empty(self) -> None:
        """Test empty request reports nothing to change."""
        assert UpdateUserRequest().is_empty
        assert not UpdateUserRequest(name="alice").is_empty

    def test_email_needs_at_sign(self) -> None:
        """Test obviously malformed emails are rejected."""
        with pytest.raises(ValidationError):
            UpdateUserRequest(email="alice.example.com")

    def test_whitespace_stripped(self) -> None:
        """Test profile fields are trimmed."""
        assert UpdateUserRequest(name="  alice  ").name == "alice"

    def test_unknown_field_rejected(self) -> None:
        """Test password cannot be changed through the profile."""
        with pytest.raises(ValidationError):
            UpdateUserRequest(password="x")  # type: ignore[call-arg]
