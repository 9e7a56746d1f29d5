import json
import inspect
from dataclasses import asdict, fields as dc_fields
from typing import Any, Dict, Optional

from kycflow.core.steps import STEP_STATUSES, NOT_STARTED, MODES, MODE_ONLINE, StepSequence
from kycflow.observability.logging import log
from kycflow.settings import settings
from kycflow.store.models import WorkflowState
from kycflow.store.session_binder import SessionBinder

STATE = "state"
MODE = "mode"
FORM = "form"


def _migrate_state_data(data: dict, sequence: StepSequence) -> dict:
    """
    Bring a stored aggregate in line with the configured sequence.
    The key set of `steps` becomes exactly the sequence; unknown statuses
    fall back to not_started.
    """
    removed_top_fields = 0
    reset_statuses = 0

    allowed_top = {f.name for f in dc_fields(WorkflowState)}
    for k in list(data.keys()):
        if k not in allowed_top:
            del data[k]
            removed_top_fields += 1

    raw_steps = data.get("steps")
    if not isinstance(raw_steps, dict):
        raw_steps = {}
    steps: Dict[str, str] = {}
    for step in sequence:
        status = raw_steps.get(step, NOT_STARTED)
        if status not in STEP_STATUSES:
            status = NOT_STARTED
            reset_statuses += 1
        steps[step] = status
    dropped_steps = len([k for k in raw_steps if k not in sequence])
    data["steps"] = steps

    if data.get("currentStep") not in sequence:
        data["currentStep"] = sequence.first

    if data.get("mode") not in MODES:
        data["mode"] = MODE_ONLINE

    ledger = data.get("previouslyCompletedSteps")
    if not isinstance(ledger, dict):
        ledger = {}
    data["previouslyCompletedSteps"] = {k: True for k, v in ledger.items() if k in sequence and v}

    doc_ids = data.get("stepDocumentIds")
    if not isinstance(doc_ids, dict):
        doc_ids = {}
    data["stepDocumentIds"] = {k: str(v) for k, v in doc_ids.items() if k in sequence and v}

    if removed_top_fields or dropped_steps or reset_statuses:
        log(
            event="workflow_state_migrated",
            removedTopFields=int(removed_top_fields),
            droppedSteps=int(dropped_steps),
            resetStatuses=int(reset_statuses),
        )
    return data


def _filter_state_kwargs(data: dict) -> dict:
    """
    Drop unknown fields so WorkflowState(**kwargs) never explodes
    """
    sig = inspect.signature(WorkflowState)
    allowed = set(sig.parameters.keys())
    return {k: v for k, v in data.items() if k in allowed}


class WorkflowStore:
    """
    Durable per-profile store: the WorkflowState aggregate, the mode and one
    data blob per step. Owns the profile's SessionBinder so that clear_all()
    also drops the ephemeral keys.
    """

    def __init__(self, redis, profile_id: str, sequence: StepSequence,
                 binder: Optional[SessionBinder] = None, prefix: Optional[str] = None):
        self.redis = redis
        self.profile_id = profile_id
        self.sequence = sequence
        self.prefix = prefix or settings.KEY_PREFIX
        self.binder = binder or SessionBinder(redis, profile_id, prefix=self.prefix)

    def key(self, *parts: str) -> str:
        return ":".join((self.prefix, self.profile_id) + parts)

    def form_key(self, step: str) -> str:
        return self.key(FORM, step)

    # Aggregate

    def load(self) -> WorkflowState:
        try:
            raw = self.redis.get(self.key(STATE))
        except Exception as e:
            log(event="workflow_load_failed", profileId=self.profile_id, error=str(e))
            raw = None
        if not raw:
            return WorkflowState.initial(self.sequence)

        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("stored workflow state is not an object")
            data = _migrate_state_data(data, self.sequence)
            state = WorkflowState(**_filter_state_kwargs(data))
        except (TypeError, ValueError) as e:
            log(event="workflow_state_corrupt", profileId=self.profile_id, error=str(e))
            return WorkflowState.initial(self.sequence)

        # Mode is persisted separately and wins over the copy inside the aggregate.
        try:
            mode = self.redis.get(self.key(MODE))
        except Exception:
            mode = None
        if mode in MODES:
            state.mode = mode
        return state

    def save(self, state: WorkflowState) -> bool:
        try:
            self.redis.set(self.key(STATE), json.dumps(asdict(state)))
            self.redis.set(self.key(MODE), state.mode)
            return True
        except Exception as e:
            log(event="workflow_save_failed", profileId=self.profile_id, error=str(e))
            return False

    def has_state(self) -> bool:
        try:
            return bool(self.redis.exists(self.key(STATE)))
        except Exception:
            return False

    # Step data (single writer: the step's own submission path)

    def save_step_data(self, step: str, data: Any) -> bool:
        try:
            self.redis.set(self.form_key(step), json.dumps(data))
            return True
        except Exception as e:
            log(event="step_data_save_failed", profileId=self.profile_id, step=step, error=str(e))
            return False

    def get_step_data(self, step: str) -> Optional[Any]:
        try:
            raw = self.redis.get(self.form_key(step))
        except Exception:
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            return None

    def has_data(self, step: str) -> bool:
        try:
            return bool(self.redis.exists(self.form_key(step)))
        except Exception as e:
            log(event="step_data_probe_failed", profileId=self.profile_id, step=step, error=str(e))
            return False

    def remove_step_data(self, step: str) -> None:
        try:
            self.redis.delete(self.form_key(step))
        except Exception as e:
            log(event="step_data_remove_failed", profileId=self.profile_id, step=step, error=str(e))

    # Whole-profile operations

    def is_cleared(self) -> bool:
        """True when neither the aggregate nor any step data survives."""
        return not self.has_state() and not any(self.has_data(s) for s in self.sequence)

    def clear_all(self) -> None:
        keys = [self.key(STATE), self.key(MODE)]
        keys += [self.form_key(s) for s in self.sequence]
        keys += self.binder.keys()
        try:
            pipe = self.redis.pipeline(transaction=True)
            pipe.delete(*keys)
            pipe.execute()
        except Exception as e:
            log(event="workflow_clear_failed", profileId=self.profile_id, error=str(e))
            return
        log(event="workflow_cleared", profileId=self.profile_id)
