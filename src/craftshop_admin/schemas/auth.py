"""Authentication and account schemas."""

from pydantic import BaseModel, ConfigDict, Field, model_validator

_STRICT = ConfigDict(
    frozen=True,
    extra="forbid",
    validate_assignment=True,
    str_strip_whitespace=True,
    validate_default=True,
)


class TokenRequest(BaseModel):
    """Parameters of a token endpoint request."""

    # Secrets are compared verbatim.
    model_config = ConfigDict(**{**_STRICT, "str_strip_whitespace": False})

    grant_type: str = Field(..., min_length=1, description="OAuth2 grant type")
    client_id: str | None = Field(default=None, description="Client identifier")
    client_secret: str | None = Field(default=None, description="Client secret")
    username: str | None = Field(default=None, description="Resource owner username")
    password: str | None = Field(default=None, description="Resource owner password")
    refresh_token: str | None = Field(default=None, description="Refresh token")
    scope: str | None = Field(default=None, description="Requested scope")
    redirect_uri: str | None = Field(default=None)
    code: str | None = Field(default=None, description="Authorization code")


class TokenResponse(BaseModel):
    """Successful token endpoint response."""

    model_config = _STRICT

    access_token: str
    token_type: str = Field(default="Bearer")
    expires_in: int = Field(..., ge=0, description="Access token lifetime in seconds")
    refresh_token: str | None = None
    scope: str


class CurrentUser(BaseModel):
    """Current authenticated user information."""

    model_config = _STRICT

    id: int = Field(..., description="User identifier")
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="User email")
    scope: str = Field(..., description="User scope tier")
    username: str | None = Field(default=None, description="Login username")


class UpdateUserRequest(BaseModel):
    """Profile changes; fields left out are not touched."""

    model_config = _STRICT

    name: str | None = Field(default=None, min_length=1, max_length=200)
    email: str | None = Field(default=None, min_length=3, max_length=320)

    @model_validator(mode="after")
    def validate_email_shape(self) -> "UpdateUserRequest":
        """Reject obviously malformed email addresses."""
        if self.email is not None and "@" not in self.email:
            raise ValueError("email must contain '@'")
        return self

    @property
    def is_empty(self) -> bool:
        """True when there is nothing to change."""
        return not self.name and not self.email
