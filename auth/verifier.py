"""
auth/verifier.py -- Credential verification state machine.

    START
      -> ephemeral limiter check          (denied: rate_limited / account_locked)
      -> principal lookup                 (store down: infrastructure_error)
      -> unknown identifier / no secret   (invalid_credentials)
      -> durable lockout check            (account_locked)
      -> bcrypt comparison                (mismatch: ledger write, invalid_credentials)
      -> ledger reset + limiter reset + session issue
    GRANTED

Ordering:
  The ephemeral check runs first: it is cheap, in-memory and does not touch
  the durable ledger. Durable state is only written after the secret
  comparison has actually run, so a request abandoned part-way never leaves
  a ledger increment without a completed comparison.

Fail closed:
  verify() never raises. Store errors and any unexpected exception become a
  DENIED(infrastructure_error) result. No retry is attempted -- the first
  store failure denies the attempt.

Enumeration:
  An unknown identifier and a wrong secret produce the same result shape,
  and both pay for one bcrypt comparison.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from auth.audit import AuditTrail
from auth.identity import UNKNOWN_ORIGIN, extract_origin, normalize_identifier
from auth.ledger import LockoutLedger, minutes_until
from auth.models import DenialReason, RateDecision, VerificationResult
from auth.rate_limit import EphemeralRateLimiter
from auth.store import PrincipalStore
from auth.tokens import SessionIssuer, burn_dummy_check, verify_secret
from core.clock import Clock, utcnow

logger = logging.getLogger("admingate.auth")


class CredentialVerifier:
    """Checks an identifier/secret pair and issues a session on success.

    Usage:
        verifier = CredentialVerifier(store, limiter, ledger, issuer, audit)
        result = verifier.verify("admin@example.com", "s3cret", request.headers)
        if result.granted:
            issuer.set_cookie(response, result.token)
    """

    def __init__(
        self,
        store: PrincipalStore,
        limiter: EphemeralRateLimiter,
        ledger: LockoutLedger,
        issuer: SessionIssuer,
        audit: AuditTrail,
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.limiter = limiter
        self.ledger = ledger
        self.issuer = issuer
        self.audit = audit
        self._clock = clock

    def verify(self, identifier: str, secret: str, headers=None) -> VerificationResult:
        normalized = ""
        origin = UNKNOWN_ORIGIN
        try:
            normalized = normalize_identifier(identifier or "")
            origin = extract_origin(headers)
            result = self._verify(normalized, secret or "", origin)
        except Exception:
            logger.exception("Unexpected error while verifying %s", normalized or "<unparsed>")
            result = self._deny(normalized, DenialReason.infrastructure_error, origin)
        self.audit.log_verification(result, self._clock())
        return result

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    def _verify(self, identifier: str, secret: str, origin: str) -> VerificationResult:
        if not identifier or not secret:
            return self._deny(identifier, DenialReason.invalid_credentials, origin)

        decision = self.limiter.check(identifier)
        if not decision.allowed:
            return self._throttled(identifier, decision, origin)

        try:
            principal = self.store.get_by_identifier(identifier)
        except SQLAlchemyError:
            logger.error("Durable store unavailable during lookup for %s", identifier)
            return self._deny(identifier, DenialReason.infrastructure_error, origin)

        if principal is None or not principal.hashed_secret:
            burn_dummy_check(secret)
            return self._deny(identifier, DenialReason.invalid_credentials, origin)

        if self.ledger.locked_until(principal) is not None:
            return self._deny(
                identifier,
                DenialReason.account_locked,
                origin,
                retry_after_minutes=self.ledger.remaining_minutes(principal),
            )

        if not verify_secret(secret, principal.hashed_secret):
            try:
                updated = self.ledger.record_failure(principal)
            except SQLAlchemyError:
                logger.error("Durable store unavailable while recording failure for %s", identifier)
                return self._deny(identifier, DenialReason.infrastructure_error, origin)
            until = self.ledger.locked_until(updated)
            if until is not None:
                self.limiter.note_durable_lock(identifier, until)
            return self._deny(identifier, DenialReason.invalid_credentials, origin)

        try:
            self.ledger.record_success(principal, origin)
        except SQLAlchemyError:
            logger.error("Durable store unavailable while recording login for %s", identifier)
            return self._deny(identifier, DenialReason.infrastructure_error, origin)

        self.limiter.reset(identifier)
        token, claims = self.issuer.issue(principal.id, principal.identifier, principal.role)
        return VerificationResult(
            granted=True,
            identifier=identifier,
            principal=principal,
            token=token,
            claims=claims,
            origin=origin,
        )

    def _throttled(self, identifier: str, decision: RateDecision, origin: str) -> VerificationResult:
        """Deny an attempt the ephemeral limiter refused, without a store call.

        If this process wrote a durable lock for the identifier that is still
        active, the denial is reported as account_locked with the ledger's
        remaining time; otherwise it is rate_limited.
        """
        now = self._clock()
        durable = decision.durable_locked_until
        if durable is not None and durable > now:
            return self._deny(
                identifier,
                DenialReason.account_locked,
                origin,
                retry_after_minutes=minutes_until(durable, now),
            )
        minutes = minutes_until(decision.locked_until, now) if decision.locked_until else 0
        return self._deny(identifier, DenialReason.rate_limited, origin, retry_after_minutes=minutes)

    @staticmethod
    def _deny(
        identifier: str,
        reason: DenialReason,
        origin: str = UNKNOWN_ORIGIN,
        retry_after_minutes: int | None = None,
    ) -> VerificationResult:
        return VerificationResult(
            granted=False,
            identifier=identifier,
            reason=reason,
            retry_after_minutes=retry_after_minutes,
            origin=origin,
        )
