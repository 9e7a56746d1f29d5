"""
Access policy: which step may a user currently occupy.

Both functions are pure over (state, sequence, has_data) and never raise.
`has_data` is the step-data presence capability of the store.
"""
from typing import Callable

from kycflow.core.steps import COMPLETED, StepSequence
from kycflow.store.models import WorkflowState

HasData = Callable[[str], bool]


def _done(state: WorkflowState, step: str, has_data: HasData) -> bool:
    return state.steps.get(step) == COMPLETED and has_data(step)


def can_access_step(state: WorkflowState, step: str, sequence: StepSequence, has_data: HasData) -> bool:
    idx = sequence.index(step)
    if idx < 0:
        return False

    # 1. entry step is always open
    if idx == 0:
        return True

    # 2. completed steps stay editable
    if state.steps.get(step) == COMPLETED:
        return True

    # 3. second step: first step must be completed AND carry data
    if idx == 1:
        return _done(state, sequence.first, has_data)

    # 4. every earlier step completed
    return all(state.steps.get(s) == COMPLETED for s in sequence.before(step))


def prefix_complete(state: WorkflowState, step: str, sequence: StepSequence, has_data: HasData) -> bool:
    """Every step strictly before `step` is completed with step data present."""
    return all(_done(state, s, has_data) for s in sequence.before(step))


def find_correct_step(state: WorkflowState, current: str, sequence: StepSequence, has_data: HasData) -> str:
    """
    Step the user should be on. The current step is kept when its prefix is
    complete; otherwise the furthest step whose prefix is complete.
    """
    if current in sequence and prefix_complete(state, current, sequence, has_data):
        return current

    furthest = sequence.first
    for step in sequence:
        if not prefix_complete(state, step, sequence, has_data):
            break
        furthest = step
        if not _done(state, step, has_data):
            break
    return furthest
