"""
auth/ledger.py -- Durable lockout policy over the principal record.

The store owns persistence; this module owns the rules:
  - a principal whose locked_until lies in the future is locked (fail closed),
  - each secret mismatch is written through immediately, and reaching the
    ceiling locks the account for lock_duration,
  - a match zeroes the counter, clears the lock and stamps last-login data.

Unlike the ephemeral limiter, this state survives restarts and is shared by
every process that talks to the same database.

Store errors (sqlalchemy.exc.SQLAlchemyError) propagate to the caller; the
verifier turns them into infrastructure_error.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta

from auth.models import Principal
from auth.store import PrincipalStore
from core.clock import Clock, utcnow

logger = logging.getLogger("admingate.auth")


def minutes_until(moment: datetime, now: datetime) -> int:
    """Whole minutes left until moment, rounded up. Never negative."""
    return max(0, math.ceil((moment - now).total_seconds() / 60))


class LockoutLedger:
    def __init__(
        self,
        store: PrincipalStore,
        max_failed_attempts: int = 5,
        lock_duration: timedelta = timedelta(minutes=30),
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.max_failed_attempts = max_failed_attempts
        self.lock_duration = lock_duration
        self._clock = clock

    def locked_until(self, principal: Principal) -> datetime | None:
        """Return the active lock expiry, or None if the principal may attempt."""
        if principal.locked_until is not None and principal.locked_until > self._clock():
            return principal.locked_until
        return None

    def remaining_minutes(self, principal: Principal) -> int:
        until = self.locked_until(principal)
        return minutes_until(until, self._clock()) if until is not None else 0

    def record_failure(self, principal: Principal) -> Principal:
        """Persist one failed attempt. Returns the principal as now stored."""
        updated = self.store.record_failed_attempt(
            principal.id,
            ceiling=self.max_failed_attempts,
            lock_until=self._clock() + self.lock_duration,
        )
        if updated is None:
            # Deleted between lookup and write; nothing left to lock.
            return principal
        if updated.failed_attempts >= self.max_failed_attempts:
            logger.warning(
                "Principal %s locked until %s after %d failed attempts",
                updated.identifier,
                updated.locked_until.isoformat() if updated.locked_until else "?",
                updated.failed_attempts,
            )
        return updated

    def record_success(self, principal: Principal, origin: str) -> datetime:
        """Clear lockout state and stamp last-login metadata. Returns the login time."""
        at = self._clock()
        self.store.record_successful_login(principal.id, at=at, origin=origin)
        return at

    def unlock(self, principal: Principal) -> bool:
        """Operator recovery path. Clears the counter and any lock."""
        return self.store.clear_lockout(principal.id)
