"""
Identity-provider redirect parameters
-------------------------------------
The provider sends the user back to a step page with `status`, a document id
and an optional free-text `message`. Both `status` and the document id must
be present for the redirect to count; anything else on the URL is ignored.
"""
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from kycflow.api.normalize import normalize_flow_query
from kycflow.core.steps import COMPLETED, CANCELLED, FAILED

SUCCESS = "success"
FAILURE = "failure"
CANCEL = "cancel"


@dataclass(frozen=True)
class ProviderRedirect:
    status: str
    document_id: str
    message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCESS

    @property
    def outcome(self) -> str:
        """success -> completed, cancel -> cancelled, anything else -> failed."""
        if self.status == SUCCESS:
            return COMPLETED
        if self.status == CANCEL:
            return CANCELLED
        return FAILED


def parse_redirect(params: Optional[Mapping[str, Any]]) -> Optional[ProviderRedirect]:
    q = normalize_flow_query(params)
    if not q["status"] or not q["documentId"]:
        return None
    status = q["status"] if q["status"] in (SUCCESS, CANCEL) else FAILURE
    return ProviderRedirect(status=status, document_id=q["documentId"], message=q["message"])
