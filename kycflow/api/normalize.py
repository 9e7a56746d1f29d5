from typing import Any, Dict, Mapping, Optional


def _first(params: Mapping[str, Any], *names: str) -> Optional[str]:
    for n in names:
        v = params.get(n)
        if v is None:
            continue
        s = str(v).strip()
        if s:
            return s
    return None


def normalize_flow_query(params: Optional[Mapping[str, Any]]) -> Dict[str, Optional[str]]:
    """
    Accepts the query-string variants seen on step pages (provider redirects,
    older links) and converts them into the canonical shape:

    {
      "status": "success|failure|cancel|<raw>" | None,
      "documentId": "..." | None,
      "message": "..." | None,
      "sessionId": "..." | None,
    }
    """
    if params is None:
        params = {}

    status = _first(params, "status", "digio_status")
    return {
        "status": status.lower() if status else None,
        "documentId": _first(params, "documentId", "digio_doc_id", "document_id", "docId"),
        "message": _first(params, "message", "msg"),
        "sessionId": _first(params, "session_id", "sessionId"),
    }
