"""
Workflow Counters
-----------------
Best-effort Redis counters for the workflow engine, read back by
/admin/metrics. A metrics failure never reaches the caller: counters are
observability, not state.
"""
from __future__ import annotations
import time
from typing import Dict, Optional

from kycflow.settings import settings
from kycflow.store.redis_conn import get_redis

PREFIX = "metrics:kyc:"

# Counter names (stable across restarts)
REPAIR_DEMOTED = "repair:demoted"
REPAIR_PROMOTED = "repair:promoted"
CALLBACK_COMPLETED = "callback:completed"
CALLBACK_FAILED = "callback:failed"
CALLBACK_CANCELLED = "callback:cancelled"
STEPS_RESTORED = "callback:restored_steps"
NAVIGATIONS = "navigation:performed"
NAVIGATIONS_DROPPED = "navigation:dropped"
ACCESS_DENIED = "access:denied"
SESSION_LOST = "session:lost"
TOKEN_EXPIRED = "token:expired"
STEPS_COMPLETED = "steps:completed"
STATUS_REJECTED = "steps:status_rejected"

COUNTERS = (
    REPAIR_DEMOTED,
    REPAIR_PROMOTED,
    CALLBACK_COMPLETED,
    CALLBACK_FAILED,
    CALLBACK_CANCELLED,
    STEPS_RESTORED,
    NAVIGATIONS,
    NAVIGATIONS_DROPPED,
    ACCESS_DENIED,
    SESSION_LOST,
    TOKEN_EXPIRED,
    STEPS_COMPLETED,
    STATUS_REJECTED,
)


def _now_s() -> int:
    return int(time.time())


def increment(name: str, amount: int = 1, r=None) -> None:
    if not settings.ENABLE_METRICS or amount <= 0:
        return
    try:
        r = r or get_redis()
        r.incr(PREFIX + name, int(amount))
    except Exception:
        return


def get_snapshot(r=None) -> Dict[str, object]:
    """Every counter (0 when absent) plus the snapshot time."""
    out: Dict[str, object] = {}
    try:
        r = r or get_redis()
        for name in COUNTERS:
            out[name] = int(r.get(PREFIX + name) or 0)
    except Exception:
        out = {name: 0 for name in COUNTERS}
    out["enabled"] = bool(settings.ENABLE_METRICS)
    out["snapshot_at"] = _now_s()
    return out


def read(name: str, r=None) -> Optional[int]:
    try:
        r = r or get_redis()
        return int(r.get(PREFIX + name) or 0)
    except Exception:
        return None
