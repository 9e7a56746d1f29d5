from dataclasses import asdict

import pytest

from kycflow.core.engine import WorkflowEngine
from kycflow.core.scheduler import Scheduler
from kycflow.core.steps import CANCELLED, COMPLETED, FAILED, IN_PROGRESS, NOT_STARTED, StepSequence
from kycflow.provider.redirect import parse_redirect
from kycflow.store.workflow_repo import WorkflowStore


def _titles(view):
    return [n["title"] for n in view["notices"]]


def test_success_completes_verified_step_and_restores_later_one(store, seed, make_engine):
    seed(store, {"A": COMPLETED, "B": IN_PROGRESS}, data_steps=("A", "B", "C"), ledger=("C",))
    engine = make_engine()

    view = engine.enter_page("C", {"status": "success", "documentId": "X", "session_id": "sess-1"})

    assert engine.state.steps == {"A": COMPLETED, "B": COMPLETED, "C": COMPLETED}
    assert engine.state.providerDocumentId == "X"
    assert store.load().steps == engine.state.steps
    assert store.binder.provider_outcome() == {"step": "B", "status": "success", "documentId": "X"}

    # user stays put, redirect params are stripped from the location
    assert view["redirects"] == []
    assert view["navigation"]["scheduled"] is None
    assert engine.location == "/flow/C?session_id=sess-1"
    assert "Verification successful" in _titles(view)
    assert "Previous progress restored" in _titles(view)


def test_success_without_ledger_entry_does_not_restore(store, seed, make_engine):
    seed(store, {"A": COMPLETED, "B": IN_PROGRESS}, data_steps=("A", "B", "C"))
    engine = make_engine()
    view = engine.enter_page("C", {"status": "SUCCESS", "digio_doc_id": "X", "session_id": "sess-1"})

    assert engine.state.steps["B"] == COMPLETED
    assert engine.state.steps["C"] == NOT_STARTED
    assert "Previous progress restored" not in _titles(view)


def test_same_redirect_twice_is_a_no_op(store, seed, make_engine):
    seed(store, {"A": COMPLETED, "B": IN_PROGRESS}, data_steps=("A", "B", "C"), ledger=("C",))
    params = {"status": "success", "documentId": "X", "session_id": "sess-1"}

    engine = make_engine()
    engine.enter_page("C", params)
    once = asdict(engine.state)

    # same page load: latched
    assert engine.reconciler.process(parse_redirect(params)) is False
    engine.enter_page("C", params)
    assert asdict(engine.state) == once

    # a fresh page load with the same parameters lands on the same state
    again = make_engine()
    again.enter_page("C", params)
    assert asdict(again.state) == once


def test_restoration_only_covers_a_contiguous_run(fake_redis, clock, seed):
    seq = StepSequence(["A", "B", "C", "D", "E"])
    store = WorkflowStore(fake_redis, "p5", seq)
    seed(store, {"A": COMPLETED, "B": IN_PROGRESS}, data_steps=("A", "B", "C", "E"), ledger=("C", "D", "E"))
    engine = WorkflowEngine(store, scheduler=Scheduler(clock), sensitive_steps=[], stay_on_failure_steps=[])

    engine.enter_page("C", {"status": "success", "documentId": "X", "session_id": "sess-1"})

    assert engine.state.steps["C"] == COMPLETED
    # D has no data, so E is not reached even though it qualifies on its own
    assert engine.state.steps["D"] == NOT_STARTED
    assert engine.state.steps["E"] == NOT_STARTED


def test_cancel_sends_user_back_to_verified_step(store, seed, make_engine, advance):
    seed(store, {"A": COMPLETED, "B": IN_PROGRESS}, data_steps=("A", "B"))
    engine = make_engine()

    view = engine.enter_page("C", {"status": "cancel", "documentId": "X", "session_id": "sess-1"})
    assert engine.state.steps["B"] == CANCELLED
    assert view["notices"][0]["variant"] == "destructive"
    assert view["navigation"]["scheduled"]["step"] == "B"
    assert view["redirects"] == []

    advance(engine, 100)
    out = engine.page_view()
    assert out["redirects"] == [
        {"url": "/flow/B?session_id=sess-1", "step": "B", "replace": True, "atMs": out["redirects"][0]["atMs"]}
    ]
    assert engine.location_step == "B"
    assert store.load().currentStep == "B"
    assert store.binder.last_navigation()["to"] == "B"


def test_unknown_status_counts_as_failure(store, seed, make_engine):
    seed(store, {"A": COMPLETED, "B": IN_PROGRESS}, data_steps=("A", "B"))
    engine = make_engine()
    engine.enter_page("C", {"status": "timeout", "docId": "X", "session_id": "sess-1"})
    assert engine.state.steps["B"] == FAILED


def test_failure_on_allow_listed_landing_step_stays_in_place(store, seed, make_engine, advance):
    seed(store, {"A": COMPLETED, "B": IN_PROGRESS}, data_steps=("A", "B"))
    engine = make_engine(stay_on_failure_steps=["C"])

    view = engine.enter_page("C", {"status": "failure", "documentId": "X", "message": "Face mismatch",
                                   "session_id": "sess-1"})
    assert engine.state.steps["B"] == FAILED
    assert view["navigation"]["scheduled"] is None
    assert view["notices"][0]["description"] == "Face mismatch"

    advance(engine, 1000)
    assert engine.page_view()["redirects"] == []
    assert engine.location == "/flow/C?session_id=sess-1"


@pytest.mark.parametrize("params", [
    {"status": "success"},
    {"documentId": "X"},
    {"status": "", "documentId": "X"},
])
def test_incomplete_parameters_are_ignored(store, seed, make_engine, params):
    seed(store, {"A": COMPLETED, "B": IN_PROGRESS}, data_steps=("A", "B"))
    engine = make_engine()
    engine.enter_page("C", dict(params, session_id="sess-1"))
    assert engine.state.steps["B"] == IN_PROGRESS
    assert engine.reconciler.processed is False


def test_redirect_on_first_step_has_nothing_to_verify(store, seed, make_engine):
    seed(store, {"A": IN_PROGRESS}, current="A")
    engine = make_engine()
    engine.enter_page("A", {"status": "success", "documentId": "X"})
    assert engine.state.steps["A"] == IN_PROGRESS
    assert engine.state.providerDocumentId is None


def test_document_id_is_recorded_against_the_verified_step(store, seed, make_engine):
    seed(store, {"A": COMPLETED, "B": IN_PROGRESS}, data_steps=("A", "B"))
    engine = make_engine()
    engine.enter_page("C", {"status": "success", "documentId": "DOC-B", "session_id": "sess-1"})

    assert engine.state.stepDocumentIds == {"B": "DOC-B"}
    assert store.load().stepDocumentIds == {"B": "DOC-B"}


def test_success_for_a_step_without_data_is_not_applied(store, seed, make_engine):
    seed(store, {"A": COMPLETED, "B": IN_PROGRESS}, data_steps=("A", "C"), ledger=("C",))
    engine = make_engine()
    view = engine.enter_page("C", {"status": "success", "documentId": "X", "session_id": "sess-1"})

    assert engine.state.steps["B"] == IN_PROGRESS
    assert engine.state.steps["C"] == NOT_STARTED
    assert "Step incomplete" in _titles(view)
    assert "Verification successful" not in _titles(view)
    assert "Previous progress restored" not in _titles(view)
    # the user is sent back to the step that still needs its details
    assert view["navigation"]["scheduled"]["step"] == "B"
