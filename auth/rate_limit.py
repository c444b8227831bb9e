"""
auth/rate_limit.py -- Process-local brute-force throttle keyed by identifier.

The ephemeral limiter is the cheap first line of defense: it absorbs
high-frequency guessing without a durable store round-trip per attempt. Its
state lives in process memory and is lost on restart; the durable lockout
ledger (auth/ledger.py) is the authority that survives restarts.

Concurrency:
  Route handlers run in a thread pool, so check() can be entered by several
  threads at once. Each identifier maps onto one of a fixed pool of locks
  (lock striping). The read-then-write sequence for an entry always runs
  under its stripe's lock, so two concurrent attempts can never both observe
  count == max_attempts - 1 and both proceed. Attempts for identifiers on
  different stripes do not contend.

  sweep() takes each entry's stripe lock before re-checking and deleting it,
  so it tolerates concurrent check()/reset() calls.

The limiter never raises -- it only advises.
"""

from __future__ import annotations

import threading
import zlib
from datetime import datetime

from auth.models import RateDecision, RateEntry, RateLimitConfig, RateStatus
from core.clock import Clock, utcnow

_STRIPES = 64


class EphemeralRateLimiter:
    """Injected, lock-protected store of RateEntry objects.

    Usage:
        limiter = EphemeralRateLimiter(RateLimitConfig())
        decision = limiter.check("admin@example.com")
        if not decision.allowed: ...
        limiter.reset("admin@example.com")   # after a successful login
    """

    def __init__(self, config: RateLimitConfig | None = None, clock: Clock = utcnow) -> None:
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._entries: dict[str, RateEntry] = {}
        self._locks = [threading.Lock() for _ in range(_STRIPES)]

    def _lock_for(self, identifier: str) -> threading.Lock:
        return self._locks[zlib.crc32(identifier.encode("utf-8")) % _STRIPES]

    def check(self, identifier: str, config: RateLimitConfig | None = None) -> RateDecision:
        """Count one attempt for identifier and return whether it may proceed.

        config overrides the limiter's default for this call only.
        """
        cfg = config or self.config
        with self._lock_for(identifier):
            now = self._clock()
            entry = self._entries.get(identifier)

            if entry is None:
                self._entries[identifier] = RateEntry(count=1, window_reset_at=now + cfg.window)
                return RateDecision(allowed=True, remaining_attempts=cfg.max_attempts - 1)

            # An active lockout always wins over count and window.
            if entry.locked_until is not None and entry.locked_until > now:
                return RateDecision(
                    allowed=False,
                    remaining_attempts=0,
                    locked_until=entry.locked_until,
                    durable_locked_until=entry.durable_locked_until,
                )

            if entry.window_reset_at < now:
                self._entries[identifier] = RateEntry(count=1, window_reset_at=now + cfg.window)
                return RateDecision(allowed=True, remaining_attempts=cfg.max_attempts - 1)

            entry.count += 1
            if entry.count > cfg.max_attempts:
                entry.locked_until = now + cfg.lockout
                return RateDecision(
                    allowed=False,
                    remaining_attempts=0,
                    locked_until=entry.locked_until,
                    durable_locked_until=entry.durable_locked_until,
                )

            return RateDecision(allowed=True, remaining_attempts=cfg.max_attempts - entry.count)

    def reset(self, identifier: str) -> None:
        """Drop the entry for identifier. Safe to call when none exists."""
        with self._lock_for(identifier):
            self._entries.pop(identifier, None)

    def note_durable_lock(self, identifier: str, until: datetime) -> None:
        """Remember that the ledger locked identifier until `until`.

        Later denials carry it in RateDecision.durable_locked_until. No-op when
        the identifier has no entry.
        """
        with self._lock_for(identifier):
            entry = self._entries.get(identifier)
            if entry is not None:
                entry.durable_locked_until = until

    def status(self, identifier: str) -> RateStatus:
        """Return the current entry state without counting an attempt."""
        with self._lock_for(identifier):
            entry = self._entries.get(identifier)
            if entry is None:
                return RateStatus(is_locked=False, attempts=0)
            now = self._clock()
            is_locked = entry.locked_until is not None and entry.locked_until > now
            return RateStatus(is_locked=is_locked, attempts=entry.count, locked_until=entry.locked_until)

    def sweep(self) -> int:
        """Delete entries whose window has expired and which carry no active lockout.

        Expiry is re-checked under the entry's lock at deletion time, never
        from a cached snapshot. Returns the number of entries removed.
        """
        removed = 0
        for identifier in list(self._entries):
            with self._lock_for(identifier):
                entry = self._entries.get(identifier)
                if entry is None:
                    continue
                now = self._clock()
                locked = entry.locked_until is not None and entry.locked_until > now
                if entry.window_reset_at < now and not locked:
                    del self._entries[identifier]
                    removed += 1
        return removed

    def __len__(self) -> int:
        return len(self._entries)
