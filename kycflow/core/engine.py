"""
WorkflowEngine: one page load of the onboarding flow for one profile.

Owns the in-memory WorkflowState, the store/binder handles, the scheduler and
the collaborators (navigation, reconciler, expiry). Every mutating call writes
the state back through the store; reads go through the in-memory copy.
"""
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional
from urllib.parse import urlencode

from kycflow.core import notices
from kycflow.core.access import can_access_step, find_correct_step
from kycflow.core.expiry import ExpiryMonitor
from kycflow.core.navigation import NavigationController
from kycflow.core.reconciler import CallbackReconciler
from kycflow.core.repair import fix_inconsistent_state, validate_step_statuses
from kycflow.core.scheduler import Scheduler
from kycflow.core.steps import COMPLETED, MODE_OFFLINE, MODES, STEP_STATUSES, label
from kycflow.api.normalize import normalize_flow_query
from kycflow.observability import metrics
from kycflow.observability.logging import log
from kycflow.provider.redirect import parse_redirect
from kycflow.settings import settings
from kycflow.store.models import WorkflowState
from kycflow.store.workflow_repo import WorkflowStore
from kycflow.utils.urls import step_path, step_url


@dataclass
class Redirect:
    url: str
    step: str
    replace: bool
    atMs: int


@dataclass
class LoadingState:
    isNavigating: bool = False
    navigationMessage: str = ""


def _steps_option(name: str, given: Optional[Iterable[str]], default: Iterable[str], sequence) -> List[str]:
    if given is None:
        return [s for s in default if s in sequence]
    items = list(given)
    unknown = [s for s in items if s not in sequence]
    if unknown:
        raise ValueError(f"{name} references unknown steps: {unknown}")
    return items


class WorkflowEngine:
    def __init__(
        self,
        store: WorkflowStore,
        scheduler: Optional[Scheduler] = None,
        sensitive_steps: Optional[Iterable[str]] = None,
        stay_on_failure_steps: Optional[Iterable[str]] = None,
        navigation_delay_ms: Optional[int] = None,
        completion_redirect_delay_ms: Optional[int] = None,
        completion_navigate_delay_ms: Optional[int] = None,
        expiry_countdown_ms: Optional[int] = None,
        base_path: Optional[str] = None,
        html_suffix: Optional[bool] = None,
    ):
        self.store = store
        self.binder = store.binder
        self.sequence = store.sequence
        self.profile_id = store.profile_id
        self.scheduler = scheduler or Scheduler()
        self.notifier = notices.NoticeBuffer()
        self.loading = LoadingState()

        self.base_path = base_path
        self.html_suffix = html_suffix
        self.completion_redirect_delay_ms = int(
            settings.COMPLETION_REDIRECT_DELAY_MS if completion_redirect_delay_ms is None else completion_redirect_delay_ms
        )
        self.completion_navigate_delay_ms = int(
            settings.COMPLETION_NAVIGATE_DELAY_MS if completion_navigate_delay_ms is None else completion_navigate_delay_ms
        )

        self.state: WorkflowState = store.load()

        # Simulated location of the client
        self.location: str = ""
        self.location_step: Optional[str] = None
        self.redirects: List[Redirect] = []

        self.initialized = False
        self._statuses_validated = False
        self._state_fixed = False

        self.navigation = NavigationController(
            self,
            _steps_option("SENSITIVE_STEPS", sensitive_steps, settings.SENSITIVE_STEPS, self.sequence),
            settings.NAVIGATION_DELAY_MS if navigation_delay_ms is None else navigation_delay_ms,
        )
        self.reconciler = CallbackReconciler(
            self,
            _steps_option("STAY_ON_FAILURE_STEPS", stay_on_failure_steps, settings.STAY_ON_FAILURE_STEPS, self.sequence),
        )
        self.expiry = ExpiryMonitor(
            self,
            settings.EXPIRY_COUNTDOWN_SEC * 1000 if expiry_countdown_ms is None else expiry_countdown_ms,
        )

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def has_data(self, step: str) -> bool:
        return self.store.has_data(step)

    def commit(self) -> bool:
        return self.store.save(self.state)

    def session_id(self) -> Optional[str]:
        return self.binder.get_session_id()

    def url_for(self, step: str) -> str:
        return step_url(
            step, self.session_id(), self.sequence.first, base_path=self.base_path, html_suffix=self.html_suffix
        )

    def tick(self) -> int:
        return self.scheduler.run_due()

    def replace_location(self, url: str) -> None:
        """Rewrite the current URL without a path change (history.replaceState)."""
        self.location = url

    def perform(self, url: str, step: str, replace: bool = False) -> None:
        """Carry out a move: the client is told to go to `url`."""
        self.redirects.append(Redirect(url=url, step=step, replace=replace, atMs=self.scheduler.now()))
        self.location = url
        metrics.increment(metrics.NAVIGATIONS, r=self.store.redis)
        log(event="navigation_performed", profileId=self.profile_id, step=step, url=url, replace=replace)
        self._on_path_change(step)

    def _on_path_change(self, step: str) -> None:
        if step == self.location_step:
            return
        self.location_step = step
        if step in self.sequence and self.state.currentStep != step:
            self.state.currentStep = step
            # before the first page load is initialised a missing aggregate
            # means session loss, so nothing may be written yet
            if self.initialized or self.store.has_state():
                self.commit()
        self.reconciler.reset()
        self.navigation.on_path_change()

    def cancel_pending_work(self, keep=None) -> None:
        """Cancel every scheduled task except `keep`."""
        for task in self.scheduler.pending():
            if task is not keep:
                task.cancel()
        self.navigation.cancel_scheduled()
        self.loading = LoadingState()

    # ------------------------------------------------------------------
    # Access + repair
    # ------------------------------------------------------------------

    def can_access_step(self, step: str) -> bool:
        return can_access_step(self.state, step, self.sequence, self.has_data)

    def find_correct_step(self, current: Optional[str] = None) -> str:
        return find_correct_step(self.state, current or self.state.currentStep, self.sequence, self.has_data)

    def validate_step_statuses(self) -> List[str]:
        """Latched: runs once per page load."""
        if self._statuses_validated:
            return []
        self._statuses_validated = True
        changed = validate_step_statuses(self.state, self.sequence, self.has_data)
        if changed:
            self.commit()
            metrics.increment(metrics.REPAIR_DEMOTED, len(changed), r=self.store.redis)
            log(event="workflow_repaired", profileId=self.profile_id, repair="demote", steps=changed)
        return changed

    def fix_inconsistent_state(self) -> bool:
        changed = fix_inconsistent_state(self.state, self.sequence, self.has_data)
        if changed:
            self.commit()
            metrics.increment(metrics.REPAIR_PROMOTED, len(changed), r=self.store.redis)
            log(event="workflow_repaired", profileId=self.profile_id, repair="promote", steps=changed)
        return bool(changed)

    # ------------------------------------------------------------------
    # State mutations
    # ------------------------------------------------------------------

    def update_step_status(self, step: str, status: str, commit: bool = True) -> bool:
        """
        Returns False, leaving the status untouched, when `completed` is asked
        for a step that has no saved data.
        """
        self.sequence.require(step)
        if status not in STEP_STATUSES:
            raise ValueError(f"unknown step status: {status!r}")
        if status == COMPLETED and not self.has_data(step):
            metrics.increment(metrics.STATUS_REJECTED, r=self.store.redis)
            log(event="step_status_rejected", profileId=self.profile_id, step=step, status=status)
            self.notifier.notify(
                "Step incomplete",
                f"Please fill in your {label(step)} details before continuing.",
                notices.DESTRUCTIVE,
            )
            return False
        self.state.steps[step] = status
        if status == COMPLETED:
            self.state.previouslyCompletedSteps[step] = True
        if commit:
            self.commit()
        return True

    def set_current_step(self, step: str) -> None:
        self.sequence.require(step)
        if self.state.currentStep != step:
            self.state.currentStep = step
            self.commit()

    def set_mode(self, mode: str) -> None:
        if mode not in MODES:
            raise ValueError(f"unknown mode: {mode!r}")
        self.state.mode = mode
        self.commit()

    def is_offline_mode(self) -> bool:
        return self.state.mode == MODE_OFFLINE

    def set_provider_session_id(self, value: Optional[str]) -> None:
        self.state.providerSessionId = value
        self.commit()

    def set_provider_document_id(self, value: Optional[str]) -> None:
        self.state.providerDocumentId = value
        self.commit()

    def set_workflow_id(self, value: Optional[str]) -> None:
        self.state.workflowId = value
        self.commit()

    def set_session_id(self, session_id: str) -> None:
        self.binder.set_session_id(session_id)

    def get_previous_step(self, step: Optional[str] = None) -> Optional[str]:
        return self.sequence.previous(step or self.location_step or self.state.currentStep)

    def get_next_step(self, step: Optional[str] = None) -> Optional[str]:
        return self.sequence.next(step or self.location_step or self.state.currentStep)

    def reset_state(self) -> None:
        """Back to the initial aggregate, in memory only."""
        self.state = WorkflowState.initial(self.sequence)

    def clear_all_data(self) -> None:
        self.store.clear_all()

    def is_storage_cleared(self) -> bool:
        return self.store.is_cleared()

    def restart(self) -> None:
        """Explicit restart: everything goes, the user starts at the entry step."""
        self.cancel_pending_work()
        self.expiry.cancel()
        self.clear_all_data()
        self.reset_state()
        log(event="workflow_restarted", profileId=self.profile_id)
        self.navigation.force_navigate(self.sequence.first)

    # ------------------------------------------------------------------
    # Step completion
    # ------------------------------------------------------------------

    def complete_step(self, step: str, data: Any, next_step: Optional[str] = None) -> bool:
        self.sequence.require(step)
        if next_step is not None:
            self.sequence.require(next_step)

        if not self.store.save_step_data(step, data):
            self.notifier.notify(
                "Error",
                f"Could not save your {label(step)} details. Please try again.",
                notices.DESTRUCTIVE,
            )
            return False

        self.update_step_status(step, COMPLETED)
        metrics.increment(metrics.STEPS_COMPLETED, r=self.store.redis)
        log(event="step_completed", profileId=self.profile_id, step=step, data=data)

        self.notifier.notify("Step Completed", f"{label(step).capitalize()} information saved successfully.")
        self.loading = LoadingState(True, f"Completing {label(step)} step...")

        target = next_step or self.sequence.next(step) or step
        self.scheduler.call_later(
            self.completion_redirect_delay_ms, self._completion_redirect, target, name="completion_redirect"
        )
        return True

    def _completion_redirect(self, target: str) -> None:
        self.loading = LoadingState(True, "Redirecting to next step...")
        self.set_current_step(target)
        self.scheduler.call_later(
            self.completion_navigate_delay_ms, self._completion_navigate, target, name="completion_navigate"
        )

    def _completion_navigate(self, target: str) -> None:
        try:
            self.navigation.navigate_to_step(target)
        finally:
            self.loading = LoadingState()

    # ------------------------------------------------------------------
    # Page entry
    # ------------------------------------------------------------------

    def enter_page(self, step: str, params: Optional[Mapping[str, Any]] = None) -> dict:
        params = dict(params or {})
        self.tick()

        q = normalize_flow_query(params)
        self._on_path_change(step)
        self.location = step_path(step, base_path=self.base_path, html_suffix=self.html_suffix)
        if params:
            self.location += "?" + urlencode(params)

        if step not in self.sequence:
            log(event="page_unknown_step", profileId=self.profile_id, step=step)
            return self.page_view(drain=False)

        first = self.sequence.first
        if step == first and not self.store.has_state():
            self.commit()

        if not self.initialized:
            self.initialized = True
            if not self._initialize(step, q["sessionId"]):
                return self.page_view(drain=False)
        elif step != first and q["sessionId"] and q["sessionId"] != self.session_id():
            self.set_session_id(q["sessionId"])

        handled = False
        redirect = parse_redirect(params)
        if redirect is not None:
            handled = self.reconciler.process(redirect)

        if handled:
            # the reconciler already decided where the user goes on this path
            self.navigation.redirect_latch = True
        else:
            denied = not self.can_access_step(step)
            if denied:
                metrics.increment(metrics.ACCESS_DENIED, r=self.store.redis)
                log(event="access_denied", profileId=self.profile_id, step=step)
            self.navigation.redirect_to_correct_step(denied=denied)

        return self.page_view(drain=False)

    def _initialize(self, step: str, url_session_id: Optional[str]) -> bool:
        first = self.sequence.first
        if step != first:
            if not self.store.has_state():
                return self._handle_session_loss("no_state")
            if not (url_session_id or self.session_id()):
                return self._handle_session_loss("no_session")
        elif not url_session_id:
            self.binder.clear_session()

        if url_session_id and url_session_id != self.session_id():
            self.set_session_id(url_session_id)

        self.validate_step_statuses()
        if not self._state_fixed:
            self._state_fixed = True
            self.fix_inconsistent_state()
        log(event="workflow_initialized", profileId=self.profile_id, step=step, currentStep=self.state.currentStep)
        return True

    def _handle_session_loss(self, reason: str) -> bool:
        metrics.increment(metrics.SESSION_LOST, r=self.store.redis)
        log(event="session_lost", profileId=self.profile_id, reason=reason, step=self.location_step)
        self.cancel_pending_work()
        self.clear_all_data()
        self.reset_state()
        self.notifier.notify(
            "Session expired",
            "Your session could not be found. Please start again from the first step.",
            notices.DESTRUCTIVE,
        )
        self.navigation.force_navigate(self.sequence.first)
        return False

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def check_token_validity(self, validity: Any) -> bool:
        return self.expiry.check_token_validity(validity)

    def redirect_now(self) -> bool:
        return self.expiry.redirect_now()

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def snapshot(self) -> dict:
        return {
            "state": asdict(self.state),
            "location": self.location,
            "step": self.location_step,
            "sessionId": self.session_id(),
            "stepData": {s: self.has_data(s) for s in self.sequence},
            "access": {s: self.can_access_step(s) for s in self.sequence},
            "correctStep": self.find_correct_step(self.location_step),
            "isOfflineMode": self.is_offline_mode(),
            "navigation": self.navigation.snapshot(),
            "loading": asdict(self.loading),
            "expiry": self.expiry.snapshot(),
        }

    def page_view(self, drain: bool = True) -> dict:
        """Snapshot plus the redirects and notices produced since the last view."""
        view = self.snapshot()
        if drain:
            redirects, self.redirects = self.redirects, []
            view["notices"] = [n.to_dict() for n in self.notifier.drain()]
        else:
            redirects = list(self.redirects)
            view["notices"] = [n.to_dict() for n in self.notifier.peek()]
        view["redirects"] = [asdict(r) for r in redirects]
        return view

    def teardown(self) -> None:
        """Engine discarded (page unload): nothing scheduled may fire afterwards."""
        self.expiry.cancel()
        self.scheduler.cancel_all()
