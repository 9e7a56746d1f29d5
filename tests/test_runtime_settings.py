import pytest
from unittest.mock import patch

from kycflow.core.registry import build_engine, default_sequence
from kycflow.settings import Settings, _csv, settings


def test_csv_helper():
    assert _csv("a, b,,c ") == ["a", "b", "c"]
    assert _csv("") == []


def test_defaults():
    s = Settings()
    assert s.STEP_SEQUENCE[0] == "signin"
    assert s.STEP_SEQUENCE[-1] == "completion"
    assert s.SENSITIVE_STEPS == ["bank"]
    assert s.STAY_ON_FAILURE_STEPS == ["personal-details"]
    assert s.NAVIGATION_DELAY_MS == 100
    assert s.COMPLETION_REDIRECT_DELAY_MS == 1000
    assert s.COMPLETION_NAVIGATE_DELAY_MS == 400
    assert s.EXPIRY_COUNTDOWN_SEC == 10


def test_sequence_lists_must_agree():
    with patch.object(settings, "SENSITIVE_STEPS", ["vault"]):
        with pytest.raises(ValueError):
            default_sequence()


def test_empty_or_duplicate_sequence_is_rejected():
    with patch.object(settings, "STEP_SEQUENCE", []):
        with pytest.raises(ValueError):
            default_sequence()
    with patch.object(settings, "STEP_SEQUENCE", ["a", "a"]), \
            patch.object(settings, "SENSITIVE_STEPS", []), \
            patch.object(settings, "STAY_ON_FAILURE_STEPS", []):
        with pytest.raises(ValueError):
            default_sequence()


def test_custom_sequence_from_settings(fake_redis):
    with patch.object(settings, "STEP_SEQUENCE", ["login", "kyc", "done"]), \
            patch.object(settings, "SENSITIVE_STEPS", ["kyc"]), \
            patch.object(settings, "STAY_ON_FAILURE_STEPS", []):
        engine = build_engine("p1", redis=fake_redis)
    assert engine.sequence.steps == ["login", "kyc", "done"]
    assert engine.navigation.sensitive_steps == ("kyc",)
    assert engine.expiry.countdown_ms == 10_000
