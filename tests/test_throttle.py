"""Tests for storage.throttle."""

import threading

import pytest

from core.errors import ThrottledError
from storage.throttle import Outcome, ThrottleGuard, ThrottleRecord


def _miss() -> None:
    return None


def _hit() -> int:
    return 0


@pytest.fixture()
def guard() -> ThrottleGuard:
    return ThrottleGuard()


# ── Records ───────────────────────────────────────────────────────────────────

def test_unknown_identifier_reads_fresh(guard: ThrottleGuard) -> None:
    record = guard.peek("alice")
    assert record == ThrottleRecord("alice")
    assert record.failed_attempts == 0
    assert record.locked_until is None
    assert len(guard) == 0  # peek does not create records


def test_attempts_remaining() -> None:
    record = ThrottleRecord("alice", failed_attempts=2)
    assert record.attempts_remaining(5, now=0) == 3
    locked = ThrottleRecord("alice", failed_attempts=5, locked_until=100.0)
    assert locked.attempts_remaining(5, now=50) == 0
    assert locked.attempts_remaining(5, now=100) == 0  # expired but not yet reset


# ── State machine ─────────────────────────────────────────────────────────────

def test_failure_increments(guard: ThrottleGuard) -> None:
    decision = guard.attempt("alice", 10.0, 3, 60, _miss)
    assert decision.outcome is Outcome.FAILURE
    assert decision.record.failed_attempts == 1
    assert decision.record.last_attempt_at == 10.0


def test_success_resets_failures(guard: ThrottleGuard) -> None:
    guard.attempt("alice", 10.0, 3, 60, _miss)
    guard.attempt("alice", 11.0, 3, 60, _miss)
    decision = guard.attempt("alice", 12.0, 3, 60, lambda: -1)
    assert decision.outcome is Outcome.SUCCESS
    assert decision.allowed
    assert decision.offset == -1
    assert decision.record.failed_attempts == 0


def test_lockout_after_max_attempts(guard: ThrottleGuard) -> None:
    outcomes = [guard.attempt("alice", 100.0, 3, 60, _miss).outcome for _ in range(3)]
    assert outcomes == [Outcome.FAILURE, Outcome.FAILURE, Outcome.LOCKED_OUT]
    record = guard.peek("alice")
    assert record.failed_attempts == 3
    assert record.locked_until == 160.0


def test_locked_attempt_skips_matcher(guard: ThrottleGuard) -> None:
    for _ in range(3):
        guard.attempt("alice", 100.0, 3, 60, _miss)

    def matcher() -> int:
        raise AssertionError("matcher must not run during lockout")

    decision = guard.attempt("alice", 159.0, 3, 60, matcher)
    assert decision.outcome is Outcome.REJECTED
    assert decision.record.failed_attempts == 3   # not incremented
    assert decision.record.locked_until == 160.0  # not extended
    assert decision.record.last_attempt_at == 159.0


def test_lockout_expires(guard: ThrottleGuard) -> None:
    for _ in range(3):
        guard.attempt("alice", 100.0, 3, 60, _miss)
    decision = guard.attempt("alice", 160.0, 3, 60, _hit)
    assert decision.outcome is Outcome.SUCCESS
    assert decision.record.failed_attempts == 0
    assert decision.record.locked_until is None


def test_failure_after_expiry_starts_fresh_count(guard: ThrottleGuard) -> None:
    for _ in range(3):
        guard.attempt("alice", 100.0, 3, 60, _miss)
    decision = guard.attempt("alice", 200.0, 3, 60, _miss)
    assert decision.outcome is Outcome.FAILURE
    assert decision.record.failed_attempts == 1


def test_max_attempts_one_locks_immediately(guard: ThrottleGuard) -> None:
    assert guard.attempt("alice", 0.0, 1, 60, _miss).outcome is Outcome.LOCKED_OUT


def test_identifiers_are_independent(guard: ThrottleGuard) -> None:
    for _ in range(3):
        guard.attempt("alice", 100.0, 3, 60, _miss)
    assert guard.attempt("bob", 100.0, 3, 60, _hit).outcome is Outcome.SUCCESS
    assert guard.peek("bob").failed_attempts == 0


# ── Administration ────────────────────────────────────────────────────────────

def test_reset_clears_lockout(guard: ThrottleGuard) -> None:
    for _ in range(3):
        guard.attempt("alice", 100.0, 3, 60, _miss)
    guard.reset("alice")
    assert guard.peek("alice") == ThrottleRecord("alice")
    assert guard.attempt("alice", 101.0, 3, 60, _hit).outcome is Outcome.SUCCESS


def test_reset_unknown_identifier_is_noop(guard: ThrottleGuard) -> None:
    guard.reset("nobody")
    assert len(guard) == 0


def test_check_raises_while_locked(guard: ThrottleGuard) -> None:
    assert guard.check("alice", 0.0).failed_attempts == 0
    for _ in range(3):
        guard.attempt("alice", 100.0, 3, 60, _miss)
    with pytest.raises(ThrottledError) as exc:
        guard.check("alice", 120.0)
    assert exc.value.code == "THROTTLED"
    assert exc.value.lockout_expires_at == 160.0
    assert guard.check("alice", 160.0).failed_attempts == 3


# ── Concurrency ───────────────────────────────────────────────────────────────

def test_concurrent_failures_are_not_lost(guard: ThrottleGuard) -> None:
    n = 40
    barrier = threading.Barrier(n)

    def worker() -> None:
        barrier.wait()
        guard.attempt("alice", 100.0, n + 1, 60, _miss)

    threads = [threading.Thread(target=worker) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    record = guard.peek("alice")
    assert record.failed_attempts == n
    assert record.locked_until is None


def test_concurrent_failures_lock_exactly_once(guard: ThrottleGuard) -> None:
    n = 20
    barrier = threading.Barrier(n)
    outcomes = []
    outcomes_lock = threading.Lock()

    def worker() -> None:
        barrier.wait()
        decision = guard.attempt("alice", 100.0, 5, 60, _miss)
        with outcomes_lock:
            outcomes.append(decision.outcome)

    threads = [threading.Thread(target=worker) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count(Outcome.FAILURE) == 4
    assert outcomes.count(Outcome.LOCKED_OUT) == 1
    assert outcomes.count(Outcome.REJECTED) == n - 5
    assert guard.peek("alice").failed_attempts == 5


def test_other_identifiers_not_blocked_by_slow_match(guard: ThrottleGuard) -> None:
    inside = threading.Event()
    release = threading.Event()

    def slow_matcher() -> None:
        inside.set()
        release.wait(timeout=5)
        return None

    t = threading.Thread(target=guard.attempt, args=("alice", 0.0, 5, 60, slow_matcher))
    t.start()
    assert inside.wait(timeout=5)
    try:
        # Would deadlock on a store-wide lock.
        assert guard.attempt("bob", 0.0, 5, 60, _hit).outcome is Outcome.SUCCESS
    finally:
        release.set()
        t.join()
    assert guard.peek("alice").failed_attempts == 1
