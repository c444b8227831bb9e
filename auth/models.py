"""
auth/models.py -- Domain dataclasses for the authentication gateway.

Pattern: Data class (pure data container, zero logic). Stores, the limiter,
the ledger and the verifier do the work; these types only carry shape.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum


@dataclass
class Principal:
    """An administrator account as stored in the durable store.

    identifier is always the normalized form (see auth.identity). The lockout
    fields are owned by the ledger: failed_attempts returns to 0 and
    locked_until to None on every successful verification.
    """

    identifier: str
    role: str  # "admin"
    id: int | None = None
    hashed_secret: str | None = None  # None = provisioned but never given a secret
    failed_attempts: int = 0
    locked_until: datetime | None = None
    last_login_at: datetime | None = None
    last_login_origin: str | None = None
    created_at: str | None = None


@dataclass
class AuthEvent:
    """One row of the durable auth activity trail.

    outcome is "granted" for successful logins, the DenialReason value for
    denials, and "ok" for logout / unlock actions.
    """

    identifier: str
    action: str  # "login", "logout", "unlock"
    outcome: str
    origin: str = "unknown"
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class RateLimitConfig:
    """Sliding-window parameters for the ephemeral limiter."""

    max_attempts: int = 5
    window: timedelta = timedelta(minutes=15)
    lockout: timedelta = timedelta(minutes=30)


@dataclass
class RateEntry:
    """In-memory counter for one identifier. Lost on process restart.

    durable_locked_until mirrors a lock this process wrote to the ledger, so a
    throttled attempt can be reported without a store read.
    """

    count: int
    window_reset_at: datetime
    locked_until: datetime | None = None
    durable_locked_until: datetime | None = None


@dataclass(frozen=True)
class RateDecision:
    """Advice returned by EphemeralRateLimiter.check()."""

    allowed: bool
    remaining_attempts: int
    locked_until: datetime | None = None
    durable_locked_until: datetime | None = None


@dataclass(frozen=True)
class RateStatus:
    """Read-only view of an identifier's ephemeral entry."""

    is_locked: bool
    attempts: int
    locked_until: datetime | None = None


class DenialReason(str, Enum):
    rate_limited = "rate_limited"
    account_locked = "account_locked"
    invalid_credentials = "invalid_credentials"
    infrastructure_error = "infrastructure_error"


@dataclass(frozen=True)
class SessionClaims:
    """Decoded content of a session token."""

    principal_id: int
    identifier: str
    role: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class VerificationResult:
    """Terminal state of one CredentialVerifier.verify() run.

    granted=True carries the principal, the freshly issued session token and
    its claims. granted=False carries the reason and, for rate_limited and
    account_locked, the whole minutes left before another attempt can succeed.
    """

    granted: bool
    identifier: str
    reason: DenialReason | None = None
    retry_after_minutes: int | None = None
    principal: Principal | None = None
    token: str | None = None
    claims: SessionClaims | None = None
    origin: str = "unknown"

    @property
    def outcome(self) -> str:
        return "granted" if self.granted else self.reason.value
