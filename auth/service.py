"""
auth/service.py -- Wiring of the authentication components from Settings.

The application lifespan and the test fixtures both build the gateway
through build_auth_service(), so production and tests share one wiring path
and differ only in the store URL and the clock they inject.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from auth.audit import AuditTrail
from auth.ledger import LockoutLedger
from auth.models import RateLimitConfig
from auth.rate_limit import EphemeralRateLimiter
from auth.store import PrincipalStore
from auth.tokens import SessionIssuer
from auth.verifier import CredentialVerifier
from core.clock import Clock, utcnow
from core.config import Settings


@dataclass
class AuthService:
    store: PrincipalStore
    limiter: EphemeralRateLimiter
    ledger: LockoutLedger
    issuer: SessionIssuer
    audit: AuditTrail
    verifier: CredentialVerifier

    def close(self) -> None:
        self.store.close()


def rate_limit_config(settings: Settings) -> RateLimitConfig:
    return RateLimitConfig(
        max_attempts=settings.rate_limit_max_attempts,
        window=timedelta(seconds=settings.rate_limit_window_seconds),
        lockout=timedelta(seconds=settings.rate_limit_lockout_seconds),
    )


def build_auth_service(settings: Settings, store: PrincipalStore | None = None, clock: Clock = utcnow) -> AuthService:
    """Assemble store, limiter, ledger, issuer, audit trail and verifier."""
    if store is None:
        store = PrincipalStore(settings.database_url, timeout=settings.store_timeout_seconds, clock=clock)
    limiter = EphemeralRateLimiter(rate_limit_config(settings), clock=clock)
    ledger = LockoutLedger(
        store,
        max_failed_attempts=settings.ledger_max_failed_attempts,
        lock_duration=timedelta(seconds=settings.ledger_lock_seconds),
        clock=clock,
    )
    issuer = SessionIssuer(
        settings.secret_key,
        max_age=timedelta(seconds=settings.session_max_age_seconds),
        refresh_after=timedelta(seconds=settings.session_refresh_seconds),
        cookie_name=settings.session_cookie_name,
        secure_cookies=settings.secure_cookies,
        clock=clock,
    )
    audit = AuditTrail(store)
    verifier = CredentialVerifier(store, limiter, ledger, issuer, audit, clock=clock)
    return AuthService(
        store=store,
        limiter=limiter,
        ledger=ledger,
        issuer=issuer,
        audit=audit,
        verifier=verifier,
    )
