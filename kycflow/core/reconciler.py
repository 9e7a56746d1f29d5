"""
Callback Reconciler: applies an identity-provider redirect to the workflow.

The provider returns the user to the step AFTER the one it verified. The
redirect is applied once per page load; the parameters are stripped from the
location afterwards so a refresh does not replay it.
"""
from typing import TYPE_CHECKING, Iterable, List

from kycflow.core import notices
from kycflow.core.steps import COMPLETED, CANCELLED, label
from kycflow.observability import metrics
from kycflow.observability.logging import log
from kycflow.provider.redirect import ProviderRedirect

if TYPE_CHECKING:
    from kycflow.core.engine import WorkflowEngine

_OUTCOME_COUNTERS = {
    COMPLETED: metrics.CALLBACK_COMPLETED,
    CANCELLED: metrics.CALLBACK_CANCELLED,
}


class CallbackReconciler:
    def __init__(self, engine: "WorkflowEngine", stay_on_failure_steps: Iterable[str]):
        self.engine = engine
        self.stay_on_failure_steps = tuple(stay_on_failure_steps)
        self.processed = False

    def reset(self) -> None:
        self.processed = False

    def process(self, redirect: ProviderRedirect) -> bool:
        """
        Returns True when the redirect was applied. The caller must not run
        its own correct-step redirect on the same page load afterwards.
        """
        if self.processed:
            return False
        self.processed = True

        e = self.engine
        landing = e.location_step
        verified = e.sequence.previous(landing) if landing in e.sequence else None
        if not verified:
            log(event="provider_redirect_ignored", profileId=e.profile_id, step=landing, status=redirect.status)
            return False

        outcome = redirect.outcome
        applied = e.update_step_status(verified, outcome, commit=False)
        if applied:
            self._notify(redirect, verified)
        e.state.providerDocumentId = redirect.document_id
        if redirect.document_id:
            e.state.stepDocumentIds[verified] = redirect.document_id
        restored = self._restore_after(verified) if applied and outcome == COMPLETED else []
        e.commit()
        e.binder.record_provider_outcome(verified, redirect.status, redirect.document_id)

        metrics.increment(_OUTCOME_COUNTERS.get(outcome, metrics.CALLBACK_FAILED), r=e.store.redis)
        metrics.increment(metrics.STEPS_RESTORED, len(restored), r=e.store.redis)
        log(
            event="provider_redirect_applied",
            profileId=e.profile_id,
            step=verified,
            landing=landing,
            status=redirect.status,
            outcome=outcome,
            documentId=redirect.document_id,
            restored=restored,
        )

        if restored:
            e.notifier.notify(
                "Previous progress restored",
                f"Restored {len(restored)} previously completed step(s).",
            )

        e.replace_location(e.url_for(landing))

        if redirect.succeeded:
            # a refused completion falls through to the correct-step redirect
            return applied

        if landing in self.stay_on_failure_steps:
            log(event="provider_redirect_stay", profileId=e.profile_id, step=verified, landing=landing)
            return True

        e.navigation.schedule_move(verified, replace=True)
        return True

    def _notify(self, redirect: ProviderRedirect, verified: str) -> None:
        n = self.engine.notifier
        name = label(verified)
        if redirect.succeeded:
            n.notify("Verification successful", redirect.message or f"Your {name} verification was completed successfully.")
        elif redirect.outcome == CANCELLED:
            n.notify(
                "Verification cancelled",
                redirect.message or f"You cancelled the {name} verification. Please try again.",
                notices.DESTRUCTIVE,
            )
        else:
            n.notify(
                "Verification failed",
                redirect.message or f"The {name} verification could not be completed. Please try again.",
                notices.DESTRUCTIVE,
            )

    def _restore_after(self, verified: str) -> List[str]:
        """
        Re-mark the contiguous run of later steps that were completed before
        and still carry their data. Stops at the first gap.
        """
        e = self.engine
        restored: List[str] = []
        for step in e.sequence.after(verified):
            if not (e.state.previouslyCompletedSteps.get(step) and e.has_data(step)):
                break
            if e.state.steps.get(step) != COMPLETED:
                e.state.steps[step] = COMPLETED
                restored.append(step)
        return restored
