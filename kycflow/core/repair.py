"""
Consistency repair for step statuses.

validate_step_statuses(): a completed step without data is always wrong and is
demoted; a step claiming progress right after an unfinished step is demoted.

fix_inconsistent_state(): a step stuck in_progress whose data exists while a
later step is completed is promoted. Status lagging behind data is expected
when a status write and a navigation race, so promotion wins here.

Both mutate `state` in place, return the list of changed steps, and are
idempotent.
"""
from typing import List

from kycflow.core.access import HasData
from kycflow.core.steps import (
    BLOCKING_STATUSES,
    COMPLETED,
    IN_PROGRESS,
    NOT_STARTED,
    PROGRESS_STATUSES,
    StepSequence,
)
from kycflow.store.models import WorkflowState


def validate_step_statuses(state: WorkflowState, sequence: StepSequence, has_data: HasData) -> List[str]:
    changed: List[str] = []

    # First pass: completed without data
    for step in sequence:
        if state.steps.get(step) == COMPLETED and not has_data(step):
            state.steps[step] = NOT_STARTED
            changed.append(step)

    # Second pass: adjacent pairs in order, so a demotion cascades forward.
    # in_progress followed by completed is tolerated (see fix_inconsistent_state).
    steps = sequence.steps
    for a, b in zip(steps, steps[1:]):
        if state.steps.get(a) in BLOCKING_STATUSES and state.steps.get(b) in PROGRESS_STATUSES:
            state.steps[b] = NOT_STARTED
            if b not in changed:
                changed.append(b)

    return changed


def fix_inconsistent_state(state: WorkflowState, sequence: StepSequence, has_data: HasData) -> List[str]:
    changed: List[str] = []
    steps = sequence.steps
    for i, step in enumerate(steps):
        if state.steps.get(step) != IN_PROGRESS or not has_data(step):
            continue
        if any(state.steps.get(later) == COMPLETED for later in steps[i + 1:]):
            state.steps[step] = COMPLETED
            state.previouslyCompletedSteps[step] = True
            changed.append(step)
    return changed
