from kycflow.utils.urls import step_from_path, step_path, step_url


def test_step_path():
    assert step_path("bank", base_path="/flow", html_suffix=False) == "/flow/bank"
    assert step_path("bank", base_path="/kyc/", html_suffix=True) == "/kyc/bank.html"


def test_session_id_rides_along_except_on_first_step():
    assert step_url("bank", "s 1", "signin", base_path="/flow", html_suffix=False) == "/flow/bank?session_id=s+1"
    assert step_url("signin", "s1", "signin", base_path="/flow", html_suffix=False) == "/flow/signin"
    assert step_url("bank", None, "signin", base_path="/flow", html_suffix=False) == "/flow/bank"


def test_step_from_path():
    assert step_from_path("/flow/bank.html?x=1") == "bank"
    assert step_from_path("/flow/personal-details/") == "personal-details"
    assert step_from_path("exchange") == "exchange"
    assert step_from_path("") == ""
