"""
High-level entry points: generate and verify HOTP/TOTP tokens behind a
brute-force throttle, and seal secrets under a password.

Configuration, hooks and throttle state are explicit objects owned by an
:class:`Authenticator` instance; nothing here is process-global.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from core import crypto, memory
from core.crypto import EncryptedSecret
from core.hooks import EventKind, HookRegistry, VerificationEvent
from core.hotp import generate_hotp, validate_counter, validate_secret
from core.options import OTPOptions
from core.totp import TotpCode, counter_for, generate_totp, resolve_timestamp
from core.window import verify_window
from storage.throttle import Outcome, ThrottleDecision, ThrottleGuard, ThrottleRecord

logger = logging.getLogger(__name__)

_EVENT_FOR_OUTCOME = {
    Outcome.SUCCESS: EventKind.SUCCESS,
    Outcome.FAILURE: EventKind.FAILURE,
    Outcome.LOCKED_OUT: EventKind.LOCKOUT,
    Outcome.REJECTED: EventKind.THROTTLED,
}


@dataclass(frozen=True)
class VerifyResult:
    """
    Outcome of a verification.

    ``time_delta`` is how far the matched token lags the expected one:
    seconds for TOTP, counter steps for HOTP. Positive means the token
    came from an earlier step (client clock behind), negative a later one.

    ``attempts_remaining`` and ``lockout_expires_at`` are only filled when an
    identifier was given.
    """

    is_valid: bool
    time_delta: Optional[int] = None
    attempts_remaining: Optional[int] = None
    lockout_expires_at: Optional[float] = None
    matched_counter: Optional[int] = None

    @property
    def next_counter(self) -> Optional[int]:
        """Counter to expect next (HOTP resync / replay tracking)."""
        return None if self.matched_counter is None else self.matched_counter + 1


class Authenticator:
    """
    OTP generator and verifier.

    Args:
        options:  Default options; every call may pass its own override.
        hooks:    Registry notified after each verification.
        throttle: Throttle store (a fresh in-memory one by default).
        clock:    Returns the current Unix time in seconds.
    """

    def __init__(
        self,
        options: Optional[OTPOptions] = None,
        hooks: Optional[HookRegistry] = None,
        throttle: Optional[ThrottleGuard] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.options = options or OTPOptions()
        self.hooks = hooks if hooks is not None else HookRegistry()
        self.throttle = throttle if throttle is not None else ThrottleGuard()
        self._clock = clock

    # ── Generation ───────────────────────────────────────────────────────

    def generate_hotp(
        self, secret: bytes, counter: int, options: Optional[OTPOptions] = None
    ) -> str:
        opts = options or self.options
        return generate_hotp(
            secret,
            counter,
            digits=opts.digits,
            algorithm=opts.algorithm,
            min_secret_bytes=opts.min_secret_bytes,
        )

    def generate_totp(
        self,
        secret: bytes,
        timestamp: Optional[float] = None,
        options: Optional[OTPOptions] = None,
    ) -> TotpCode:
        t = self._clock() if timestamp is None else timestamp
        return generate_totp(secret, options or self.options, t)

    # ── Verification ─────────────────────────────────────────────────────

    def verify_hotp(
        self,
        secret: bytes,
        token: str,
        counter: int,
        options: Optional[OTPOptions] = None,
        identifier: Optional[str] = None,
        hooks: Optional[HookRegistry] = None,
    ) -> VerifyResult:
        """
        Verify an HOTP token against ``counter`` ± ``window``.

        ``time_delta`` in the result is in counter steps, expected counter
        minus matched counter: +1 means the token came from ``counter - 1``
        and -2 from ``counter + 2``. ``matched_counter`` holds the counter
        that matched.

        Raises:
            InvalidSecretError:  On an empty or short secret.
            InvalidOptionsError: On an out-of-range counter.
        """
        opts = options or self.options
        validate_secret(secret, opts.min_secret_bytes)
        validate_counter(counter)
        return self._verify(secret, token, counter, 1, opts, identifier, hooks)

    def verify_totp(
        self,
        secret: bytes,
        token: str,
        timestamp: Optional[float] = None,
        options: Optional[OTPOptions] = None,
        identifier: Optional[str] = None,
        hooks: Optional[HookRegistry] = None,
    ) -> VerifyResult:
        """
        Verify a TOTP token within ±``window`` time steps of ``timestamp``.

        ``time_delta`` in the result is in seconds: ``+30`` means the token
        belongs to the step before the server's.

        Raises:
            InvalidSecretError:  On an empty or short secret.
            InvalidOptionsError: On a negative timestamp.
        """
        opts = options or self.options
        validate_secret(secret, opts.min_secret_bytes)
        t = resolve_timestamp(self._clock() if timestamp is None else timestamp)
        base = counter_for(t, opts.time_step)
        return self._verify(secret, token, base, opts.time_step, opts, identifier, hooks)

    def _verify(
        self,
        secret: bytes,
        token: str,
        base_counter: int,
        delta_unit: int,
        opts: OTPOptions,
        identifier: Optional[str],
        hooks: Optional[HookRegistry],
    ) -> VerifyResult:
        def matcher() -> Optional[int]:
            return verify_window(
                secret, token, base_counter, opts.window, opts.digits, opts.algorithm
            )

        if identifier is None:
            offset = matcher()
            result = self._result(offset, base_counter, delta_unit)
            kind = EventKind.FAILURE if offset is None else EventKind.SUCCESS
        else:
            now = self._clock()
            decision = self.throttle.attempt(
                identifier, now, opts.max_attempts, opts.lockout_duration, matcher
            )
            result = self._throttled_result(decision, base_counter, delta_unit, opts, now)
            kind = _EVENT_FOR_OUTCOME[decision.outcome]

        logger.debug("Verification for %r: %s", identifier, kind.value)
        (hooks if hooks is not None else self.hooks).notify(
            VerificationEvent(kind, identifier, result)
        )
        return result

    @staticmethod
    def _result(offset: Optional[int], base_counter: int, delta_unit: int) -> VerifyResult:
        if offset is None:
            return VerifyResult(is_valid=False)
        return VerifyResult(
            is_valid=True,
            time_delta=-offset * delta_unit,
            matched_counter=base_counter + offset,
        )

    def _throttled_result(
        self,
        decision: ThrottleDecision,
        base_counter: int,
        delta_unit: int,
        opts: OTPOptions,
        now: float,
    ) -> VerifyResult:
        record = decision.record
        base = self._result(decision.offset, base_counter, delta_unit)
        return VerifyResult(
            is_valid=base.is_valid,
            time_delta=base.time_delta,
            matched_counter=base.matched_counter,
            attempts_remaining=record.attempts_remaining(opts.max_attempts, now),
            lockout_expires_at=record.locked_until if record.is_locked(now) else None,
        )

    # ── Throttle administration ──────────────────────────────────────────

    def throttle_status(self, identifier: str) -> ThrottleRecord:
        return self.throttle.peek(identifier)

    def reset_throttle(self, identifier: str) -> None:
        self.throttle.reset(identifier)

    # ── Secrets at rest ──────────────────────────────────────────────────

    @staticmethod
    def encrypt_secret(secret: bytes, password: str) -> EncryptedSecret:
        return crypto.encrypt_secret(secret, password)

    @staticmethod
    def decrypt_secret(encrypted: EncryptedSecret, password: str) -> bytearray:
        return crypto.decrypt_secret(encrypted, password)

    @staticmethod
    def wipe(buffer: bytearray) -> None:
        memory.wipe(buffer)
