from kycflow.api.normalize import normalize_flow_query
from kycflow.core.steps import CANCELLED, COMPLETED, FAILED
from kycflow.provider.redirect import CANCEL, FAILURE, SUCCESS, parse_redirect


def test_normalize_aliases():
    q = normalize_flow_query({"status": " Success ", "digio_doc_id": "D1", "sessionId": "s1", "msg": "ok"})
    assert q == {"status": "success", "documentId": "D1", "message": "ok", "sessionId": "s1"}


def test_normalize_prefers_canonical_names():
    q = normalize_flow_query({"documentId": "A", "document_id": "B", "session_id": "x", "sessionId": "y"})
    assert q["documentId"] == "A"
    assert q["sessionId"] == "x"


def test_normalize_empty():
    assert normalize_flow_query(None) == {"status": None, "documentId": None, "message": None, "sessionId": None}


def test_parse_redirect_outcomes():
    assert parse_redirect({"status": "success", "documentId": "D"}).outcome == COMPLETED
    assert parse_redirect({"status": "cancel", "documentId": "D"}).outcome == CANCELLED

    r = parse_redirect({"status": "error", "docId": "D", "message": "bad selfie"})
    assert r.status == FAILURE
    assert r.outcome == FAILED
    assert r.message == "bad selfie"
    assert not r.succeeded


def test_parse_redirect_needs_status_and_document():
    assert parse_redirect({"status": SUCCESS}) is None
    assert parse_redirect({"documentId": "D"}) is None
    assert parse_redirect({}) is None
    assert parse_redirect({"status": CANCEL, "document_id": "D"}).document_id == "D"
