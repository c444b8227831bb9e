"""Unit tests for auth/rate_limit.py -- the ephemeral per-identifier limiter.

Covers:
- first attempt creates an entry and reports max_attempts - 1 remaining
- the attempt after max_attempts locks the identifier for the lockout period
- an active lockout rejects regardless of window expiry
- window expiry starts a fresh window
- attempts spread across the window boundary never lock
- reset() is idempotent
- identifiers do not influence each other
- sweep() keeps locked and live entries, drops expired ones
- concurrent attempts on one identifier never exceed max_attempts
"""

import threading
from datetime import timedelta

import pytest

from auth.models import RateLimitConfig
from auth.rate_limit import EphemeralRateLimiter


@pytest.fixture
def limiter(clock):
    return EphemeralRateLimiter(RateLimitConfig(), clock=clock)


class TestCheck:
    def test_first_attempt_allowed(self, limiter):
        decision = limiter.check("a@x.com")
        assert decision.allowed
        assert decision.remaining_attempts == 4
        assert decision.locked_until is None

    def test_remaining_counts_down(self, limiter):
        remaining = [limiter.check("a@x.com").remaining_attempts for _ in range(5)]
        assert remaining == [4, 3, 2, 1, 0]

    def test_attempt_after_max_is_locked(self, limiter, clock):
        for _ in range(5):
            assert limiter.check("a@x.com").allowed
        decision = limiter.check("a@x.com")
        assert not decision.allowed
        assert decision.remaining_attempts == 0
        assert decision.locked_until == clock.now + timedelta(minutes=30)

    def test_lock_outlives_window(self, limiter, clock):
        for _ in range(6):
            limiter.check("a@x.com")
        clock.advance(minutes=20)  # window (15m) expired, lockout (30m) still active
        decision = limiter.check("a@x.com")
        assert not decision.allowed
        assert decision.remaining_attempts == 0

    def test_lock_expiry_starts_fresh_window(self, limiter, clock):
        for _ in range(6):
            limiter.check("a@x.com")
        clock.advance(minutes=31)
        decision = limiter.check("a@x.com")
        assert decision.allowed
        assert decision.remaining_attempts == 4

    def test_window_expiry_resets_count(self, limiter, clock):
        for _ in range(4):
            limiter.check("a@x.com")
        clock.advance(minutes=16)
        decision = limiter.check("a@x.com")
        assert decision.allowed
        assert decision.remaining_attempts == 4

    def test_attempts_across_window_boundary_do_not_lock(self, limiter, clock):
        """Five attempts over 20 minutes: the window resets before the fifth."""
        decisions = []
        for offset in (0, 5, 5, 6, 4):  # t = 0, 5, 10, 16, 20 minutes
            clock.advance(minutes=offset)
            decisions.append(limiter.check("a@x.com"))
        assert all(d.allowed for d in decisions)
        assert decisions[3].remaining_attempts == 4  # t=16 opened a new window
        assert not limiter.status("a@x.com").is_locked

    def test_per_call_config_override(self, limiter):
        strict = RateLimitConfig(max_attempts=1, window=timedelta(minutes=1), lockout=timedelta(minutes=2))
        assert limiter.check("a@x.com", strict).allowed
        assert not limiter.check("a@x.com", strict).allowed


class TestResetAndStatus:
    def test_reset_removes_entry(self, limiter):
        limiter.check("a@x.com")
        limiter.reset("a@x.com")
        assert len(limiter) == 0
        assert limiter.status("a@x.com").attempts == 0

    def test_reset_twice_is_safe(self, limiter):
        limiter.check("a@x.com")
        limiter.reset("a@x.com")
        limiter.reset("a@x.com")
        assert len(limiter) == 0

    def test_reset_unknown_identifier(self, limiter):
        limiter.reset("never-seen@x.com")
        assert len(limiter) == 0

    def test_status_does_not_count(self, limiter):
        limiter.check("a@x.com")
        limiter.status("a@x.com")
        limiter.status("a@x.com")
        assert limiter.status("a@x.com").attempts == 1

    def test_status_reports_lock(self, limiter, clock):
        for _ in range(6):
            limiter.check("a@x.com")
        status = limiter.status("a@x.com")
        assert status.is_locked
        assert status.locked_until == clock.now + timedelta(minutes=30)


class TestIsolation:
    def test_identifiers_do_not_share_counters(self, limiter):
        for _ in range(6):
            limiter.check("a@x.com")
        decision = limiter.check("b@x.com")
        assert decision.allowed
        assert decision.remaining_attempts == 4
        assert limiter.status("a@x.com").is_locked
        assert not limiter.status("b@x.com").is_locked


class TestSweep:
    def test_sweep_drops_expired_unlocked_entries(self, limiter, clock):
        limiter.check("stale@x.com")
        clock.advance(minutes=16)
        limiter.check("fresh@x.com")
        assert limiter.sweep() == 1
        assert limiter.status("stale@x.com").attempts == 0
        assert limiter.status("fresh@x.com").attempts == 1

    def test_sweep_keeps_active_lockout(self, limiter, clock):
        for _ in range(6):
            limiter.check("locked@x.com")
        clock.advance(minutes=20)  # window over, lock still active
        assert limiter.sweep() == 0
        assert limiter.status("locked@x.com").is_locked

    def test_sweep_drops_entry_once_lock_expires(self, limiter, clock):
        for _ in range(6):
            limiter.check("locked@x.com")
        clock.advance(minutes=31)
        assert limiter.sweep() == 1
        assert len(limiter) == 0


class TestConcurrency:
    def test_parallel_attempts_never_exceed_max(self, limiter):
        """20 threads racing on one identifier: exactly max_attempts get through."""
        barrier = threading.Barrier(20)
        results: list[bool] = []
        results_lock = threading.Lock()

        def attempt() -> None:
            barrier.wait()
            allowed = limiter.check("race@x.com").allowed
            with results_lock:
                results.append(allowed)

        threads = [threading.Thread(target=attempt) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 5
        assert results.count(False) == 15

    def test_sweep_during_attempts(self, limiter, clock):
        """Sweeping while other threads count attempts must not raise or drop live entries."""
        stop = threading.Event()

        def sweeper() -> None:
            while not stop.is_set():
                limiter.sweep()

        t = threading.Thread(target=sweeper)
        t.start()
        try:
            for i in range(200):
                limiter.check(f"user{i}@x.com")
        finally:
            stop.set()
            t.join()
        assert len(limiter) == 200


class TestDurableLockMirror:
    def test_denial_carries_noted_lock(self, limiter, clock):
        until = clock.now + timedelta(minutes=30)
        for _ in range(5):
            limiter.check("a@x.com")
        limiter.note_durable_lock("a@x.com", until)
        decision = limiter.check("a@x.com")
        assert not decision.allowed
        assert decision.durable_locked_until == until

    def test_note_without_entry_is_a_no_op(self, limiter, clock):
        limiter.note_durable_lock("never-seen@x.com", clock.now + timedelta(minutes=30))
        assert len(limiter) == 0

    def test_reset_forgets_noted_lock(self, limiter, clock):
        for _ in range(5):
            limiter.check("a@x.com")
        limiter.note_durable_lock("a@x.com", clock.now + timedelta(minutes=30))
        limiter.reset("a@x.com")
        for _ in range(5):
            limiter.check("a@x.com")
        assert limiter.check("a@x.com").durable_locked_until is None
