from typing import Any, Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from kycflow.api.auth import require_api_key, require_profile
from kycflow.api.schemas import (
    CompleteStepRequest,
    FlowView,
    ModeRequest,
    NavigateRequest,
    ProviderIdsRequest,
    SessionRequest,
    StepStatusRequest,
    TokenValidityRequest,
)
from kycflow.core.engine import WorkflowEngine
from kycflow.core.registry import EngineRegistry, registry
from kycflow.provider.redirect import parse_redirect
from kycflow.store.redis_conn import get_redis
from kycflow.utils.lock import LockTimeout, profile_lock
from kycflow.utils.urls import step_from_path

router = APIRouter(prefix="/flow", tags=["flow"], dependencies=[Depends(require_api_key)])

Action = Callable[[WorkflowEngine], Any]


def get_flow_redis():
    return get_redis()


def get_registry() -> EngineRegistry:
    return registry


def _known_step(engine: WorkflowEngine, step_id: Optional[str]) -> str:
    step = step_from_path(step_id or "")
    if step not in engine.sequence:
        raise HTTPException(status_code=404, detail=f"Unknown step: {step_id}")
    return step


def _run(profile_id: str, r, reg: EngineRegistry, action: Action, reload: bool = False) -> FlowView:
    """Run one engine call under the profile lock and render the resulting view."""
    try:
        with profile_lock(profile_id, r=r):
            engine = reg.get(profile_id, redis=r, reload=reload)
            engine.tick()
            result = action(engine)
            view = engine.page_view()
    except LockTimeout:
        raise HTTPException(status_code=409, detail="Profile is busy, retry shortly")
    view["ok"] = True if result is None else bool(result)
    return FlowView.model_validate(view)


async def _flow(profile_id: str, r, reg: EngineRegistry, action: Action, reload: bool = False) -> FlowView:
    return await run_in_threadpool(_run, profile_id, r, reg, action, reload)


# ---------------------------------------------------------------------------
# Page entry + snapshot
# ---------------------------------------------------------------------------

@router.get("", response_model=FlowView)
async def get_flow(profile_id: str = Depends(require_profile), r=Depends(get_flow_redis),
                   reg: EngineRegistry = Depends(get_registry)):
    return await _flow(profile_id, r, reg, lambda e: None)


@router.get("/{step_id}", response_model=FlowView)
async def enter_step(step_id: str, request: Request, profile_id: str = Depends(require_profile),
                     r=Depends(get_flow_redis), reg: EngineRegistry = Depends(get_registry)):
    params = dict(request.query_params)
    reload = str(params.pop("reload", "")).lower() in ("1", "true", "yes")
    # Coming back from the identity provider is a fresh page load.
    if parse_redirect(params) is not None:
        reload = True
    step = step_from_path(step_id)
    return await _flow(profile_id, r, reg, lambda e: e.enter_page(step, params), reload=reload)


# ---------------------------------------------------------------------------
# Step mutations
# ---------------------------------------------------------------------------

@router.post("/{step_id}/complete", response_model=FlowView)
async def complete_step(step_id: str, body: CompleteStepRequest, profile_id: str = Depends(require_profile),
                        r=Depends(get_flow_redis), reg: EngineRegistry = Depends(get_registry)):
    def action(e: WorkflowEngine):
        step = _known_step(e, step_id)
        next_step = _known_step(e, body.nextStep) if body.nextStep else None
        return e.complete_step(step, body.data, next_step)

    return await _flow(profile_id, r, reg, action)


@router.post("/{step_id}/status", response_model=FlowView)
async def update_step_status(step_id: str, body: StepStatusRequest, profile_id: str = Depends(require_profile),
                             r=Depends(get_flow_redis), reg: EngineRegistry = Depends(get_registry)):
    def action(e: WorkflowEngine):
        return e.update_step_status(_known_step(e, step_id), body.status)

    return await _flow(profile_id, r, reg, action)


# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------

@router.post("/navigate", response_model=FlowView)
async def navigate(body: NavigateRequest, profile_id: str = Depends(require_profile),
                   r=Depends(get_flow_redis), reg: EngineRegistry = Depends(get_registry)):
    def action(e: WorkflowEngine):
        return e.navigation.navigate_to_step(_known_step(e, body.target), confirmed=body.confirmed)

    return await _flow(profile_id, r, reg, action)


@router.post("/navigate/confirm", response_model=FlowView)
async def confirm_navigation(profile_id: str = Depends(require_profile), r=Depends(get_flow_redis),
                             reg: EngineRegistry = Depends(get_registry)):
    return await _flow(profile_id, r, reg, lambda e: e.navigation.confirm_pending_navigation())


@router.post("/navigate/cancel", response_model=FlowView)
async def cancel_navigation(profile_id: str = Depends(require_profile), r=Depends(get_flow_redis),
                            reg: EngineRegistry = Depends(get_registry)):
    return await _flow(profile_id, r, reg, lambda e: e.navigation.cancel_pending_navigation())


@router.post("/back", response_model=FlowView)
async def go_back(profile_id: str = Depends(require_profile), r=Depends(get_flow_redis),
                  reg: EngineRegistry = Depends(get_registry)):
    return await _flow(profile_id, r, reg, lambda e: e.navigation.navigate_to_previous_step())


# ---------------------------------------------------------------------------
# Workflow attributes
# ---------------------------------------------------------------------------

@router.post("/mode", response_model=FlowView)
async def set_mode(body: ModeRequest, profile_id: str = Depends(require_profile),
                   r=Depends(get_flow_redis), reg: EngineRegistry = Depends(get_registry)):
    return await _flow(profile_id, r, reg, lambda e: e.set_mode(body.mode))


@router.post("/provider", response_model=FlowView)
async def set_provider_ids(body: ProviderIdsRequest, profile_id: str = Depends(require_profile),
                           r=Depends(get_flow_redis), reg: EngineRegistry = Depends(get_registry)):
    fields = body.model_dump(exclude_unset=True)

    def action(e: WorkflowEngine):
        if "providerSessionId" in fields:
            e.set_provider_session_id(fields["providerSessionId"])
        if "providerDocumentId" in fields:
            e.set_provider_document_id(fields["providerDocumentId"])
        if "workflowId" in fields:
            e.set_workflow_id(fields["workflowId"])

    return await _flow(profile_id, r, reg, action)


@router.post("/session", response_model=FlowView)
async def bind_session(body: SessionRequest, profile_id: str = Depends(require_profile),
                       r=Depends(get_flow_redis), reg: EngineRegistry = Depends(get_registry)):
    return await _flow(profile_id, r, reg, lambda e: e.set_session_id(body.sessionId))


# ---------------------------------------------------------------------------
# Token expiry + restart
# ---------------------------------------------------------------------------

@router.post("/token", response_model=FlowView)
async def check_token(body: TokenValidityRequest, profile_id: str = Depends(require_profile),
                      r=Depends(get_flow_redis), reg: EngineRegistry = Depends(get_registry)):
    return await _flow(profile_id, r, reg, lambda e: e.check_token_validity(body.model_dump()))


@router.post("/expiry/redirect-now", response_model=FlowView)
async def expiry_redirect_now(profile_id: str = Depends(require_profile), r=Depends(get_flow_redis),
                              reg: EngineRegistry = Depends(get_registry)):
    return await _flow(profile_id, r, reg, lambda e: e.redirect_now())


@router.delete("", response_model=FlowView)
async def restart(profile_id: str = Depends(require_profile), r=Depends(get_flow_redis),
                  reg: EngineRegistry = Depends(get_registry)):
    return await _flow(profile_id, r, reg, lambda e: e.restart())
