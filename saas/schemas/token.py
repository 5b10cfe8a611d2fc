from datetime import datetime

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    login: str = Field(..., min_length=1, max_length=255, description="Username or email.")
    password: str = Field(..., min_length=1, max_length=128)


class Token(BaseModel):
    access_token: str = Field(..., description="Access token string.")
    token_type: str = Field("bearer", description="Type of the token, always 'bearer'.")
    refresh_token: str | None = Field(None, description="Refresh token, only returned on login.")
    expires_in: int | None = Field(None, description="Time in seconds before the access token expires.")


class RefreshRequest(BaseModel):
    refresh_token: str | None = Field(None, description="Falls back to the refresh_token cookie when omitted.")


class TokenClaimsResponse(BaseModel):
    user_id: int
    tenant_id: int | str
    issuer: str
    issued_at: datetime
    expires_at: datetime
    not_before: datetime
