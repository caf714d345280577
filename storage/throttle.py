"""
Process-local brute-force throttle for OTP verification.

Each identifier (user id, account label ...) moves between two states:

OPEN
    Fewer than ``max_attempts`` consecutive failures. Attempts are matched.
LOCKED
    ``locked_until`` is in the future. Attempts are rejected without
    matching and do not count as failures.

A lock that has expired is treated as OPEN with the failure count reset.

Every identifier has its own lock covering check, match and update, so two
concurrent attempts on one identifier never lose an increment while
attempts on different identifiers do not wait for each other.
"""

import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, Optional

from core.errors import ThrottledError

logger = logging.getLogger(__name__)


# ── Data model ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ThrottleRecord:
    """Snapshot of one identifier's throttle state."""

    identifier: str
    failed_attempts: int = 0
    locked_until: Optional[float] = None
    last_attempt_at: Optional[float] = None

    def is_locked(self, now: float) -> bool:
        return self.locked_until is not None and now < self.locked_until

    def attempts_remaining(self, max_attempts: int, now: float) -> int:
        if self.is_locked(now):
            return 0
        return max(max_attempts - self.failed_attempts, 0)


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    LOCKED_OUT = "lockout"      # failure that started a lockout
    REJECTED = "throttled"      # attempt during an active lockout


@dataclass(frozen=True)
class ThrottleDecision:
    outcome: Outcome
    offset: Optional[int]       # matcher result, None unless SUCCESS
    record: ThrottleRecord

    @property
    def allowed(self) -> bool:
        return self.outcome is Outcome.SUCCESS


class _Entry:
    __slots__ = ("lock", "record")

    def __init__(self, identifier: str) -> None:
        self.lock = threading.Lock()
        self.record = ThrottleRecord(identifier)


# ── Guard ─────────────────────────────────────────────────────────────────────

class ThrottleGuard:
    """Thread-safe in-memory store of :class:`ThrottleRecord` objects."""

    def __init__(self) -> None:
        self._entries: Dict[str, _Entry] = {}
        # Only held while looking up or creating an entry.
        self._registry_lock = threading.Lock()

    def _entry(self, identifier: str) -> _Entry:
        with self._registry_lock:
            entry = self._entries.get(identifier)
            if entry is None:
                entry = self._entries[identifier] = _Entry(identifier)
            return entry

    # ── Public API ───────────────────────────────────────────────────────

    def attempt(
        self,
        identifier: str,
        now: float,
        max_attempts: int,
        lockout_duration: float,
        matcher: Callable[[], Optional[int]],
    ) -> ThrottleDecision:
        """
        Run one verification attempt for ``identifier`` atomically.

        Args:
            identifier:       Throttle key.
            now:              Current Unix time.
            max_attempts:     Consecutive failures that trigger a lockout.
            lockout_duration: Seconds a lockout lasts.
            matcher:          Called only if the identifier is not locked;
                              returns the match offset or None.

        Returns:
            :class:`ThrottleDecision` with the committed record.
        """
        entry = self._entry(identifier)
        with entry.lock:
            record = entry.record
            if record.is_locked(now):
                entry.record = replace(record, last_attempt_at=now)
                logger.warning("Rejected attempt for locked identifier %r", identifier)
                return ThrottleDecision(Outcome.REJECTED, None, entry.record)

            if record.locked_until is not None:
                logger.info("Lockout expired for %r", identifier)
                record = replace(record, failed_attempts=0, locked_until=None)

            offset = matcher()
            if offset is not None:
                entry.record = replace(record, failed_attempts=0, last_attempt_at=now)
                return ThrottleDecision(Outcome.SUCCESS, offset, entry.record)

            failures = record.failed_attempts + 1
            if failures >= max_attempts:
                entry.record = replace(
                    record,
                    failed_attempts=max_attempts,
                    locked_until=now + lockout_duration,
                    last_attempt_at=now,
                )
                logger.info(
                    "Locked %r for %ss after %d failed attempts",
                    identifier, lockout_duration, failures,
                )
                return ThrottleDecision(Outcome.LOCKED_OUT, None, entry.record)

            entry.record = replace(record, failed_attempts=failures, last_attempt_at=now)
            return ThrottleDecision(Outcome.FAILURE, None, entry.record)

    def peek(self, identifier: str) -> ThrottleRecord:
        """Return the current record; unknown identifiers read as fresh."""
        with self._registry_lock:
            entry = self._entries.get(identifier)
        if entry is None:
            return ThrottleRecord(identifier)
        with entry.lock:
            return entry.record

    def check(self, identifier: str, now: float) -> ThrottleRecord:
        """
        Return the record, raising if the identifier is currently locked.

        Raises:
            ThrottledError: While a lockout is active.
        """
        record = self.peek(identifier)
        if record.is_locked(now):
            raise ThrottledError(identifier, record.locked_until)
        return record

    def reset(self, identifier: str) -> None:
        """Clear failures and any lockout for ``identifier``."""
        with self._registry_lock:
            entry = self._entries.get(identifier)
        if entry is None:
            return
        with entry.lock:
            entry.record = ThrottleRecord(identifier)
        logger.info("Throttle reset for %r", identifier)

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._entries)

