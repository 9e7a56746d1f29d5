from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from kycflow.api.routes import router
from kycflow.api.admin_routes import router as admin_router
from kycflow.core.registry import default_sequence
from kycflow.observability.logging import log
from kycflow.settings import settings

app = FastAPI(title="KYC Onboarding Workflow API")

# Browser clients call the flow routes directly; restrict origins via env in prod.
origins = [x.strip() for x in settings.CORS_ORIGINS.split(",") if x.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)
app.include_router(admin_router)


@app.get("/")
def root():
    return {
        "status": "ok",
        "message": "KYC workflow API is running. Use /health and GET /flow/{step} with an x-kyc-profile header."
    }


@app.get("/health")
def health():
    return {"status": "ok"}


@app.exception_handler(Exception)
async def universal_exception_handler(request: Request, exc: Exception):
    log(event="unhandled_error", path=request.url.path, error=str(exc), errorType=type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content={"status": "error", "detail": "Internal error"},
    )


# Fail at boot, not on the first request, when the step lists disagree.
_sequence = default_sequence()
print(f"[boot] steps={_sequence.steps} sensitive={settings.SENSITIVE_STEPS} "
      f"stay_on_failure={settings.STAY_ON_FAILURE_STEPS} redis={settings.REDIS_URL.split('@')[-1]}")
