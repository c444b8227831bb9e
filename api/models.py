"""
API request and response models for AdminGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.identity import normalize_identifier

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    identifier: str = Field(min_length=1, max_length=255)
    secret: str = Field(min_length=1, max_length=255)

    @field_validator("identifier")
    @classmethod
    def normalize(cls, value: str) -> str:
        normalized = normalize_identifier(value)
        if not normalized:
            raise ValueError("identifier must not be blank")
        return normalized


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class LoginResponse(BaseModel):
    """Successful login. The session itself travels in the cookie."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    role: str
    expires_at: datetime
    redirect_to: str


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    principal_id: int
    identifier: str
    role: str
    issued_at: datetime
    expires_at: datetime


class LockoutStatusResponse(BaseModel):
    """Both lockout layers for one identifier, as seen by an operator."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    exists: bool
    ephemeral_locked: bool
    ephemeral_attempts: int
    ephemeral_locked_until: Optional[datetime] = None
    failed_attempts: int = 0
    locked_until: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    last_login_origin: Optional[str] = None


class AuthEventResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    identifier: str
    action: str
    outcome: str
    origin: str
    created_at: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
