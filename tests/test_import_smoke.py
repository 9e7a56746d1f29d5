import sys
import pytest
from unittest.mock import patch

@pytest.mark.parametrize("enable_metrics", ["true", "false"])
@pytest.mark.parametrize("html_suffix", ["true", "false"])
def test_import_graph_smoke(enable_metrics, html_suffix):
    """
    Verify that the app can be imported without crashing,
    regardless of feature flags.
    """
    with patch.dict("os.environ", {
        "ENABLE_METRICS": enable_metrics,
        "URL_HTML_SUFFIX": html_suffix,
        "REDIS_URL": "redis://localhost:6379/0",  # harmless default
    }):
        # Force reload of modules to test import side-effects
        for name in ("kycflow.main", "kycflow.api.routes", "kycflow.core.engine"):
            if name in sys.modules:
                del sys.modules[name]

        try:
            import kycflow.main
            import kycflow.api.routes
            import kycflow.core.engine
        except ImportError as e:
            pytest.fail(f"Import failed with metrics={enable_metrics} html_suffix={html_suffix}: {e}")

def test_uvicorn_importable():
    """
    Simulate uvicorn import string loading.
    """
    from kycflow.main import app
    assert app is not None
