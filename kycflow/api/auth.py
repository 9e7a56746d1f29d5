from fastapi import Header, HTTPException
from kycflow.settings import settings


def require_api_key(x_api_key: str = Header(default="", alias="x-api-key")):
    """
    API key is OPTIONAL.
    - If API_KEY env is empty: allow all requests.
    - If API_KEY env is set: require matching x-api-key header.
    """
    if not getattr(settings, "API_KEY", ""):
        return
    if x_api_key != settings.API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")


def require_profile(x_kyc_profile: str = Header(default="", alias="x-kyc-profile")) -> str:
    """The profile is the unit of durable storage; every flow call names one."""
    profile_id = (x_kyc_profile or "").strip()
    if not profile_id:
        raise HTTPException(status_code=400, detail="Missing x-kyc-profile header")
    if ":" in profile_id or len(profile_id) > 128:
        raise HTTPException(status_code=400, detail="Invalid x-kyc-profile header")
    return profile_id
