from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field

StepStatus = Literal["not_started", "in_progress", "completed", "failed", "cancelled"]
Mode = Literal["online", "offline"]

# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class CompleteStepRequest(BaseModel):
    data: Dict[str, Any] = Field(default_factory=dict)
    nextStep: Optional[str] = None

class StepStatusRequest(BaseModel):
    status: StepStatus

class NavigateRequest(BaseModel):
    target: str
    confirmed: bool = False

class ModeRequest(BaseModel):
    mode: Mode

class ProviderIdsRequest(BaseModel):
    providerSessionId: Optional[str] = None
    providerDocumentId: Optional[str] = None
    workflowId: Optional[str] = None

class SessionRequest(BaseModel):
    sessionId: str = Field(min_length=1)

class TokenValidityRequest(BaseModel):
    isValid: bool
    message: Optional[str] = None

# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class WorkflowStateOut(BaseModel):
    steps: Dict[str, StepStatus]
    currentStep: str
    mode: Mode
    providerSessionId: Optional[str] = None
    providerDocumentId: Optional[str] = None
    workflowId: Optional[str] = None
    previouslyCompletedSteps: Dict[str, bool] = Field(default_factory=dict)
    stepDocumentIds: Dict[str, str] = Field(default_factory=dict)

class NoticeOut(BaseModel):
    title: str
    description: str = ""
    variant: Literal["default", "destructive"] = "default"

class RedirectOut(BaseModel):
    url: str
    step: str
    replace: bool = False
    atMs: int

class ScheduledMoveOut(BaseModel):
    url: str
    step: str
    replace: bool = False
    dueAtMs: int

class NavigationOut(BaseModel):
    guard: Literal["idle", "running"]
    pendingNavigation: Optional[str] = None
    showConfirmation: bool = False
    scheduled: Optional[ScheduledMoveOut] = None

class LoadingOut(BaseModel):
    isNavigating: bool = False
    navigationMessage: str = ""

class ExpiryOut(BaseModel):
    expired: bool = False
    progress: float = 0.0
    secondsRemaining: int = 0
    message: Optional[str] = None

class FlowView(BaseModel):
    ok: bool = True
    state: WorkflowStateOut
    location: str
    step: Optional[str] = None
    sessionId: Optional[str] = None
    stepData: Dict[str, bool]
    access: Dict[str, bool]
    correctStep: str
    isOfflineMode: bool
    navigation: NavigationOut
    loading: LoadingOut
    expiry: ExpiryOut
    notices: List[NoticeOut] = Field(default_factory=list)
    redirects: List[RedirectOut] = Field(default_factory=list)

class AdminFlowSnapshot(BaseModel):
    profileId: str
    hasState: bool
    isCleared: bool
    state: WorkflowStateOut
    stepData: Dict[str, bool]
    sessionBound: bool
    lastNavigation: Optional[Dict[str, Any]] = None
    referrer: Optional[str] = None
    providerOutcome: Optional[Dict[str, Any]] = None
    engineLoaded: bool = False
