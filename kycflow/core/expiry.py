"""
Expiry Monitor: reacts to an invalid session token.

An invalid token purges every durable and ephemeral key of the profile,
starts a fixed countdown and, when it elapses (or the user asks for it),
sends the user back to the entry step.
"""
import math
from typing import TYPE_CHECKING, Any, Mapping, Optional

from kycflow.core import notices
from kycflow.observability import metrics
from kycflow.observability.logging import log
from kycflow.utils.time import elapsed_ratio

if TYPE_CHECKING:
    from kycflow.core.engine import WorkflowEngine

DEFAULT_MESSAGE = "For your security, your session has timed out. Please sign in again."


def _is_valid(validity: Any) -> bool:
    if validity is None:
        return True
    if isinstance(validity, Mapping):
        return bool(validity.get("isValid", True))
    return bool(getattr(validity, "isValid", True))


def _message(validity: Any) -> Optional[str]:
    if isinstance(validity, Mapping):
        return validity.get("message")
    return getattr(validity, "message", None)


class ExpiryMonitor:
    def __init__(self, engine: "WorkflowEngine", countdown_ms: int):
        self.engine = engine
        self.countdown_ms = int(countdown_ms)
        self.expired = False
        self.started_ms: Optional[int] = None
        self.message: Optional[str] = None
        self._task = None

    def check_token_validity(self, validity: Any) -> bool:
        """Returns the validity. Invalid tokens start (or restart) the countdown."""
        if _is_valid(validity):
            return True

        e = self.engine
        self.expired = True
        self.message = _message(validity) or DEFAULT_MESSAGE
        self.started_ms = e.scheduler.now()
        if self._task is not None:
            self._task.cancel()
        self._task = e.scheduler.call_later(self.countdown_ms, self._finish, name="expiry_countdown")

        # Nothing scheduled before the purge may write state back afterwards.
        e.cancel_pending_work(keep=self._task)
        e.clear_all_data()
        e.reset_state()

        e.notifier.notify("Your KYC session has expired", self.message, notices.DESTRUCTIVE)
        metrics.increment(metrics.TOKEN_EXPIRED, r=e.store.redis)
        log(event="token_expired", profileId=e.profile_id, countdownMs=self.countdown_ms, message=self.message)
        return False

    def progress(self) -> float:
        if not self.expired or self.started_ms is None:
            return 0.0
        return elapsed_ratio(self.started_ms, self.countdown_ms, self.engine.scheduler.now())

    def seconds_remaining(self) -> int:
        if not self.expired or self.started_ms is None:
            return 0
        left_ms = self.started_ms + self.countdown_ms - self.engine.scheduler.now()
        return max(0, int(math.ceil(left_ms / 1000.0)))

    def redirect_now(self) -> bool:
        if not self.expired:
            return False
        if self._task is not None:
            self._task.cancel()
        self._finish()
        return True

    def cancel(self) -> None:
        """Stop the countdown without redirecting (engine teardown)."""
        if self._task is not None:
            self._task.cancel()
        self._task = None

    def _finish(self) -> None:
        self._task = None
        self.expired = False
        self.started_ms = None
        e = self.engine
        log(event="expiry_redirect", profileId=e.profile_id, step=e.sequence.first)
        e.navigation.force_navigate(e.sequence.first, replace=True)

    def snapshot(self) -> dict:
        return {
            "expired": bool(self.expired),
            "progress": round(self.progress(), 3),
            "secondsRemaining": self.seconds_remaining(),
            "message": self.message if self.expired else None,
        }
