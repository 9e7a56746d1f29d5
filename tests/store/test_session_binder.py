from unittest.mock import MagicMock, patch

from kycflow.store.session_binder import SessionBinder


def test_session_id_is_ttl_scoped(fake_redis):
    b = SessionBinder(fake_redis, "p1", ttl_sec=60)
    b.set_session_id("sess-1")
    assert b.get_session_id() == "sess-1"
    assert fake_redis.ttl["kyc:p1:session:session_id"] == 60

    b.clear_session()
    assert b.get_session_id() is None


def test_track_navigation_records_direction_and_referrer(fake_redis):
    b = SessionBinder(fake_redis, "p1")
    b.track_navigation("bank", "exchange")

    last = b.last_navigation()
    assert last["from"] == "bank"
    assert last["to"] == "exchange"
    assert isinstance(last["timestamp"], int)
    assert b.referrer() == "bank"


def test_provider_outcome(fake_redis):
    b = SessionBinder(fake_redis, "p1")
    assert b.provider_outcome() is None
    b.record_provider_outcome("personal-details", "success", "DOC-1")
    assert b.provider_outcome() == {"step": "personal-details", "status": "success", "documentId": "DOC-1"}


def test_garbled_records_read_as_missing(fake_redis):
    b = SessionBinder(fake_redis, "p1")
    fake_redis.data[b.key("last_navigation")] = "nope{"
    fake_redis.data[b.key("provider_outcome")] = "[1, 2]"
    assert b.last_navigation() is None
    assert b.provider_outcome() is None


def test_clear_removes_every_ephemeral_key(fake_redis):
    b = SessionBinder(fake_redis, "p1")
    b.set_session_id("s")
    b.track_navigation("a", "b")
    b.record_provider_outcome("a", "cancel", "d")
    b.clear()
    assert fake_redis.data == {}


def test_redis_failures_are_logged_not_raised():
    r = MagicMock()
    r.set.side_effect = ConnectionError("down")
    r.get.side_effect = ConnectionError("down")
    b = SessionBinder(r, "p1")

    with patch("kycflow.store.session_binder.log") as mock_log:
        b.set_session_id("s")
        assert b.get_session_id() is None

    events = [c[1]["event"] for c in mock_log.call_args_list]
    assert "session_write_failed" in events
    assert "session_read_failed" in events
