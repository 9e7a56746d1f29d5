from typing import Optional
from urllib.parse import urlencode, urlsplit

from kycflow.settings import settings

HTML_SUFFIX = ".html"


def step_path(step: str, base_path: Optional[str] = None, html_suffix: Optional[bool] = None) -> str:
    base = (settings.FLOW_BASE_PATH if base_path is None else base_path).rstrip("/")
    suffix = settings.URL_HTML_SUFFIX if html_suffix is None else html_suffix
    path = f"{base}/{step}"
    if suffix and not path.endswith(HTML_SUFFIX):
        path += HTML_SUFFIX
    return path


def step_url(step: str, session_id: Optional[str], first_step: str,
             base_path: Optional[str] = None, html_suffix: Optional[bool] = None) -> str:
    """
    Destination URL for a step. The session identifier rides along on every
    step except the entry step.
    """
    url = step_path(step, base_path=base_path, html_suffix=html_suffix)
    if session_id and step != first_step:
        url += "?" + urlencode({"session_id": session_id})
    return url


def step_from_path(path: str) -> str:
    """Last path segment without a trailing ".html" ("/flow/bank.html?x=1" -> "bank")."""
    last = urlsplit(path or "").path.rstrip("/").split("/")[-1]
    if last.endswith(HTML_SUFFIX):
        last = last[: -len(HTML_SUFFIX)]
    return last
