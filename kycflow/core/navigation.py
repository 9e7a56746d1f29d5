"""
Navigation Controller: the single place that moves a user between steps.

Moves are scheduled (NAVIGATION_DELAY_MS) and arbitrated by an operation
guard: while a move is in flight, further requests are dropped, not queued.
The guard does not exclude repairs, which is why every move re-checks
consistency right before it is committed.
"""
from dataclasses import dataclass, asdict
from typing import TYPE_CHECKING, Iterable, Optional

from kycflow.core import notices
from kycflow.core.steps import COMPLETED, NOT_STARTED, label
from kycflow.observability import metrics
from kycflow.observability.logging import log

if TYPE_CHECKING:
    from kycflow.core.engine import WorkflowEngine

IDLE = "idle"
RUNNING = "running"


class OperationGuard:
    """idle/running latch for one operation; re-entrant calls see `running` and back off."""

    def __init__(self, name: str):
        self.name = name
        self.state = IDLE

    @property
    def running(self) -> bool:
        return self.state == RUNNING

    def try_enter(self) -> bool:
        if self.state == RUNNING:
            return False
        self.state = RUNNING
        return True

    def exit(self) -> None:
        self.state = IDLE

    reset = exit


@dataclass
class ScheduledMove:
    url: str
    step: str
    replace: bool
    dueAtMs: int


class NavigationController:
    def __init__(self, engine: "WorkflowEngine", sensitive_steps: Iterable[str], delay_ms: int):
        self.engine = engine
        self.sensitive_steps = tuple(sensitive_steps)
        self.delay_ms = int(delay_ms)
        self.guard = OperationGuard("navigation")

        # Confirmation gate for leaving a sensitive step early
        self.pending_navigation: Optional[str] = None
        self.show_confirmation = False

        # One-shot per path: redirect_to_correct_step already acted
        self.redirect_latch = False

        self.scheduled: Optional[ScheduledMove] = None
        self._task = None

    # ------------------------------------------------------------------
    # Lifecycle hooks
    # ------------------------------------------------------------------

    def on_path_change(self) -> None:
        self.guard.reset()
        self.redirect_latch = False

    def cancel_scheduled(self) -> None:
        if self._task is not None:
            self._task.cancel()
        self._task = None
        self.scheduled = None
        self.guard.reset()

    def _clear_gate(self) -> None:
        self.show_confirmation = False
        self.pending_navigation = None

    # ------------------------------------------------------------------
    # Moves
    # ------------------------------------------------------------------

    def schedule_move(self, step: str, replace: bool = False) -> bool:
        """Commit `step` as current and perform the move after the navigation delay."""
        e = self.engine
        if not self.guard.try_enter():
            log(event="navigation_dropped", profileId=e.profile_id, target=step, reason="in_flight")
            metrics.increment(metrics.NAVIGATIONS_DROPPED, r=e.store.redis)
            return False

        from_step = e.location_step or e.state.currentStep
        e.set_current_step(step)
        url = e.url_for(step)
        e.binder.track_navigation(from_step, step)

        self._task = e.scheduler.call_later(self.delay_ms, self._finish, url, step, replace, name="navigate")
        self.scheduled = ScheduledMove(url=url, step=step, replace=replace, dueAtMs=self._task.due_ms)
        log(event="navigation_scheduled", profileId=e.profile_id, fromStep=from_step, toStep=step, replace=replace)
        return True

    def _finish(self, url: str, step: str, replace: bool) -> None:
        self._task = None
        self.scheduled = None
        self.engine.perform(url, step, replace=replace)
        self.guard.exit()

    def force_navigate(self, step: str, replace: bool = True) -> None:
        """Unconditional, immediate move (session loss, token expiry)."""
        self.cancel_scheduled()
        self._clear_gate()
        e = self.engine
        e.perform(e.url_for(step), step, replace=replace)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def navigate_to_step(self, target: str, confirmed: bool = False, _retried: bool = False) -> bool:
        """
        Guarded move to `target`. Returns True when a move was scheduled.

        Order: guard, confirmation gate, consistency fix (retry once after a
        tick when it changed anything), earlier-step data check (fail-closed
        redirect to the first step missing its data), then the move.
        """
        e = self.engine
        if target not in e.sequence:
            log(event="navigation_unknown_target", profileId=e.profile_id, target=target)
            e.notifier.notify("Cannot navigate", f"Unknown step: {target}", notices.DESTRUCTIVE)
            return False

        if self.guard.running:
            log(event="navigation_dropped", profileId=e.profile_id, target=target, reason="in_flight")
            metrics.increment(metrics.NAVIGATIONS_DROPPED, r=e.store.redis)
            return False

        current = e.state.currentStep
        if (
            current in self.sensitive_steps
            and target != current
            and e.state.steps.get(current) != COMPLETED
            and not (confirmed or self.show_confirmation)
        ):
            self.show_confirmation = True
            self.pending_navigation = target
            log(event="navigation_confirmation_required", profileId=e.profile_id, fromStep=current, target=target)
            return False

        if e.fix_inconsistent_state() and not _retried:
            e.scheduler.call_later(
                self.delay_ms, self.navigate_to_step, target, confirmed, True, name="navigate_retry"
            )
            log(event="navigation_deferred", profileId=e.profile_id, target=target, reason="state_fixed")
            return False

        for prev in e.sequence.before(target):
            if e.state.steps.get(prev) == COMPLETED and not e.has_data(prev):
                e.update_step_status(prev, NOT_STARTED)
                log(event="navigation_redirected_missing_data", profileId=e.profile_id, target=target, step=prev)
                e.notifier.notify(
                    "Step incomplete",
                    f"Please complete the {label(prev)} step first.",
                    notices.DESTRUCTIVE,
                )
                self._clear_gate()
                self.cancel_scheduled()
                e.perform(e.url_for(prev), prev, replace=False)
                return False

        self._clear_gate()
        return self.schedule_move(target)

    def confirm_pending_navigation(self) -> bool:
        if not self.pending_navigation:
            return False
        return self.navigate_to_step(self.pending_navigation, confirmed=True)

    def cancel_pending_navigation(self) -> None:
        if self.pending_navigation:
            log(event="navigation_confirmation_declined", profileId=self.engine.profile_id, target=self.pending_navigation)
        self._clear_gate()

    def navigate_to_previous_step(self) -> bool:
        e = self.engine
        current = e.location_step or e.state.currentStep
        previous = e.sequence.previous(current)
        if not previous:
            e.notifier.notify("Cannot go back", "You are already on the first step.", notices.DESTRUCTIVE)
            return False
        e.notifier.notify("Going back", f"Returning to {label(previous)} step.")
        return self.navigate_to_step(previous)

    def redirect_to_correct_step(self, denied: bool = False) -> Optional[str]:
        """
        Move the user to find_correct_step() unless they are already there.
        Runs at most once per path; skipped while a move is in flight.
        """
        e = self.engine
        if not e.initialized or self.redirect_latch or self.guard.running:
            return None

        current = e.location_step
        if current not in e.sequence:
            return None
        if current != e.sequence.first and not e.session_id():
            return None

        correct = e.find_correct_step(current)
        if correct == current:
            return None

        self.redirect_latch = True
        log(event="redirect_to_correct_step", profileId=e.profile_id, fromStep=current, toStep=correct, denied=denied)
        if denied:
            e.notifier.notify(
                "Step not available yet",
                f"Complete the earlier steps first. Taking you to the {label(correct)} step.",
                notices.DESTRUCTIVE,
            )
        else:
            e.notifier.notify(
                "Redirecting to correct step",
                f"Taking you to the {label(correct)} step based on your progress.",
            )
        self.schedule_move(correct, replace=True)
        return correct

    def snapshot(self) -> dict:
        return {
            "guard": self.guard.state,
            "pendingNavigation": self.pending_navigation,
            "showConfirmation": bool(self.show_confirmation),
            "scheduled": asdict(self.scheduled) if self.scheduled else None,
        }
