"""
Session Binder: ephemeral, TTL-scoped keys of one profile.

The session identifier correlates navigation URLs and provider calls with the
in-progress workflow instance. It lives only as long as the browsing session
(SESSION_TTL_SEC) and is never persisted inside WorkflowState.
"""
import json
from typing import Any, Dict, List, Optional

from kycflow.settings import settings
from kycflow.observability.logging import log
from kycflow.utils.time import now_ms

SESSION_ID = "session_id"
LAST_NAVIGATION = "last_navigation"
REFERRER = "referrer"
PROVIDER_OUTCOME = "provider_outcome"

EPHEMERAL_FIELDS = (SESSION_ID, LAST_NAVIGATION, REFERRER, PROVIDER_OUTCOME)


class SessionBinder:
    def __init__(self, redis, profile_id: str, ttl_sec: Optional[int] = None, prefix: Optional[str] = None):
        self.redis = redis
        self.profile_id = profile_id
        self.ttl_sec = int(ttl_sec if ttl_sec is not None else settings.SESSION_TTL_SEC)
        self.prefix = prefix or settings.KEY_PREFIX

    def key(self, name: str) -> str:
        return f"{self.prefix}:{self.profile_id}:session:{name}"

    def keys(self) -> List[str]:
        return [self.key(n) for n in EPHEMERAL_FIELDS]

    def _set(self, name: str, value: str) -> None:
        try:
            self.redis.set(self.key(name), value, ex=self.ttl_sec)
        except Exception as e:
            log(event="session_write_failed", profileId=self.profile_id, field=name, error=str(e))

    def _get(self, name: str) -> Optional[str]:
        try:
            return self.redis.get(self.key(name))
        except Exception as e:
            log(event="session_read_failed", profileId=self.profile_id, field=name, error=str(e))
            return None

    # Session identifier

    def set_session_id(self, session_id: str) -> None:
        self._set(SESSION_ID, session_id)
        log(event="session_bound", profileId=self.profile_id, sessionId=session_id)

    def get_session_id(self) -> Optional[str]:
        return self._get(SESSION_ID) or None

    def clear_session(self) -> None:
        try:
            self.redis.delete(self.key(SESSION_ID))
        except Exception as e:
            log(event="session_write_failed", profileId=self.profile_id, field=SESSION_ID, error=str(e))
        log(event="session_cleared", profileId=self.profile_id)

    # Navigation trail

    def track_navigation(self, from_step: str, to_step: str) -> None:
        self._set(LAST_NAVIGATION, json.dumps({"from": from_step, "to": to_step, "timestamp": now_ms()}))
        self._set(REFERRER, from_step or "")

    def last_navigation(self) -> Optional[Dict[str, Any]]:
        raw = self._get(LAST_NAVIGATION)
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            return None
        return data if isinstance(data, dict) else None

    def referrer(self) -> Optional[str]:
        return self._get(REFERRER) or None

    # Last provider outcome

    def record_provider_outcome(self, step: str, status: str, document_id: str) -> None:
        self._set(PROVIDER_OUTCOME, json.dumps({"step": step, "status": status, "documentId": document_id}))

    def provider_outcome(self) -> Optional[Dict[str, Any]]:
        raw = self._get(PROVIDER_OUTCOME)
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            return None
        return data if isinstance(data, dict) else None

    def clear(self) -> None:
        try:
            self.redis.delete(*self.keys())
        except Exception as e:
            log(event="session_write_failed", profileId=self.profile_id, field="*", error=str(e))
