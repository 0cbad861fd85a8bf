"""Pydantic models for identity provider responses and token claims

These models validate what the token endpoint and delegated SSO tokens
carry before anything is cached.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ClientCredentialsTokenResponse(BaseModel):
    """Successful response from the OAuth 2.0 token endpoint"""

    access_token: str = Field(..., min_length=1, description="Bearer token")
    token_type: str = Field(default="Bearer", description="Token type")
    expires_in: int = Field(..., gt=0, description="Seconds until expiry")
    ext_expires_in: int | None = Field(
        None, description="Extended expiry for resilience"
    )

    @field_validator("token_type")
    @classmethod
    def validate_token_type(cls, v):
        """Only bearer tokens can be presented to the hub"""
        if v.lower() != "bearer":
            raise ValueError(f"Unsupported token type: {v}")
        return v


class OAuthErrorResponse(BaseModel):
    """Error body returned by the token endpoint"""

    error: str = Field(..., description="OAuth error code")
    error_description: str | None = Field(None, description="Provider detail")
    error_codes: list[int] | None = None
    trace_id: str | None = None
    correlation_id: str | None = None


class JwtClaims(BaseModel):
    """Claims read from a delegated SSO token payload"""

    model_config = ConfigDict(extra="allow")

    exp: int = Field(..., gt=0, description="Expiry, seconds since epoch")
    iat: int | None = None
    aud: str | list[str] | None = None
    iss: str | None = None
    sub: str | None = None
    oid: str | None = None
    preferred_username: str | None = None
    name: str | None = None
    email: str | None = None
    tid: str | None = None
    scp: str | None = None

    @property
    def audience(self) -> str | None:
        """First audience when the claim is a list"""
        if isinstance(self.aud, list):
            return self.aud[0] if self.aud else None
        return self.aud

    @property
    def scopes(self) -> list[str]:
        """Space separated ``scp`` claim as a list"""
        return self.scp.split() if self.scp else []
