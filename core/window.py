"""
Verification window matcher.

Tries the counters around an expected value and reports which one, if any,
produced the submitted token.
"""

import hmac
import logging
from typing import Iterator, Optional

from core.hotp import MAX_COUNTER, Algorithm, hotp_value

logger = logging.getLogger(__name__)


def candidate_offsets(window: int) -> Iterator[int]:
    """
    Yield ``0, -1, +1, -2, +2, ...`` up to ``±window``.

    Closest-to-present first, and at equal distance the older counter first.
    When more than one counter would match, the first in this order wins.
    """
    yield 0
    for distance in range(1, window + 1):
        yield -distance
        yield distance


def verify_window(
    secret_bytes: bytes,
    token: str,
    base_counter: int,
    window: int,
    digits: int,
    algorithm: Algorithm,
) -> Optional[int]:
    """
    Find the offset from ``base_counter`` whose HOTP equals ``token``.

    Inputs are assumed validated (see :func:`core.hotp.generate_hotp`).
    Each candidate is compared with :func:`hmac.compare_digest`, so a
    comparison takes the same time wherever the first differing digit is.

    Args:
        secret_bytes: Raw secret.
        token:        Submitted token (surrounding whitespace ignored).
        base_counter: Expected counter.
        window:       Maximum distance, in steps, to search.
        digits:       OTP length.
        algorithm:    HMAC algorithm.

    Returns:
        The matching offset, or None if no candidate matches.
    """
    submitted = token.strip().encode("ascii", errors="replace")
    for offset in candidate_offsets(window):
        counter = base_counter + offset
        if not 0 <= counter <= MAX_COUNTER:
            continue
        expected = hotp_value(secret_bytes, counter, digits, algorithm)
        if hmac.compare_digest(submitted, expected.encode("ascii")):
            logger.debug("Token matched at offset %+d", offset)
            return offset
    return None
