from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Header

from kycflow.api.routes import get_flow_redis, get_registry
from kycflow.api.schemas import AdminFlowSnapshot
from kycflow.core.registry import EngineRegistry, default_sequence
from kycflow.settings import settings
from kycflow.store.session_binder import SessionBinder
from kycflow.store.workflow_repo import WorkflowStore
import kycflow.observability.metrics as metrics

router = APIRouter(prefix="/admin", tags=["admin"])

def require_admin(x_admin_key: str = Header(default="", alias="x-admin-key")):
    if not settings.ADMIN_RBAC_ENABLED:
        return
    # Secure default: if enabled but no key configured, reject all.
    if not settings.ADMIN_API_KEY:
        raise HTTPException(status_code=403, detail="Admin access disabled (no key configured)")
    if x_admin_key != settings.ADMIN_API_KEY:
        raise HTTPException(status_code=403, detail="Invalid admin key")

@router.get("/flow/{profile_id}", response_model=AdminFlowSnapshot)
def get_flow_snapshot(profile_id: str, _=Depends(require_admin), r=Depends(get_flow_redis),
                      reg: EngineRegistry = Depends(get_registry)):
    """Durable view of one profile, read straight from Redis (no engine is built)."""
    binder = SessionBinder(r, profile_id)
    store = WorkflowStore(r, profile_id, default_sequence(), binder=binder)
    state = store.load()
    return {
        "profileId": profile_id,
        "hasState": store.has_state(),
        "isCleared": store.is_cleared(),
        "state": asdict(state),
        "stepData": {s: store.has_data(s) for s in store.sequence},
        "sessionBound": binder.get_session_id() is not None,
        "lastNavigation": binder.last_navigation(),
        "referrer": binder.referrer(),
        "providerOutcome": binder.provider_outcome(),
        "engineLoaded": reg.peek(profile_id) is not None,
    }

@router.get("/metrics")
def get_metrics(_=Depends(require_admin), r=Depends(get_flow_redis)):
    """
    Observability snapshot backed by Redis counters.
    """
    return metrics.get_snapshot(r)
