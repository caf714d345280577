"""
Synchronous observers for verification outcomes.
"""

import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, List, Optional

if TYPE_CHECKING:
    from core.authenticator import VerifyResult

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    LOCKOUT = "lockout"        # this failure locked the identifier
    THROTTLED = "throttled"    # rejected without matching, already locked


@dataclass(frozen=True)
class VerificationEvent:
    kind: EventKind
    identifier: Optional[str]
    result: "VerifyResult"


Hook = Callable[[VerificationEvent], None]


class HookRegistry:
    """
    Ordered list of callbacks notified after each verification.

    Usage::

        hooks = HookRegistry()

        @hooks.register
        def audit(event: VerificationEvent) -> None:
            ...
    """

    def __init__(self) -> None:
        self._hooks: List[Hook] = []

    def register(self, hook: Hook) -> Hook:
        """Append ``hook``; returns it so this works as a decorator."""
        self._hooks.append(hook)
        return hook

    def unregister(self, hook: Hook) -> None:
        """Remove ``hook``. Unknown hooks are ignored."""
        with contextlib.suppress(ValueError):
            self._hooks.remove(hook)

    def __len__(self) -> int:
        return len(self._hooks)

    def notify(self, event: VerificationEvent) -> None:
        """
        Call every hook in registration order.

        A hook that raises is logged and skipped; the rest still run.
        """
        for hook in list(self._hooks):
            try:
                hook(event)
            except Exception:
                logger.exception("Verification hook %r raised an exception", hook)
