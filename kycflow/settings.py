import os
from typing import List
from dotenv import load_dotenv

from kycflow.core.steps import BANK, DEFAULT_SEQUENCE, PERSONAL_DETAILS

load_dotenv()


def _csv(value: str) -> List[str]:
    return [x.strip() for x in (value or "").split(",") if x.strip()]


class Settings:
    API_KEY: str = os.getenv("API_KEY", "")
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    # Every durable and ephemeral key of a profile lives under this prefix.
    KEY_PREFIX: str = os.getenv("KEY_PREFIX", "kyc")
    # Lifetime of the "browsing session" keys (session id, navigation trail, provider outcome).
    SESSION_TTL_SEC: int = int(os.getenv("SESSION_TTL_SEC", "1800"))
    LOCK_TTL_MS: int = int(os.getenv("LOCK_TTL_MS", "5000"))

    # Ordered step sequence; index 0 is the entry step.
    STEP_SEQUENCE: List[str] = _csv(
        os.getenv("STEP_SEQUENCE", ",".join(DEFAULT_SEQUENCE))
    )
    # Steps that raise a confirmation gate when left before completion.
    SENSITIVE_STEPS: List[str] = _csv(os.getenv("SENSITIVE_STEPS", BANK))
    # Landing steps that keep the user in place after a provider cancel/failure.
    STAY_ON_FAILURE_STEPS: List[str] = _csv(os.getenv("STAY_ON_FAILURE_STEPS", PERSONAL_DETAILS))

    FLOW_BASE_PATH: str = os.getenv("FLOW_BASE_PATH", "/flow")
    # Static-export deployments serve every step as "<step>.html".
    URL_HTML_SUFFIX: bool = os.getenv("URL_HTML_SUFFIX", "false").lower() == "true"

    # Timer knobs (milliseconds unless stated otherwise)
    NAVIGATION_DELAY_MS: int = int(os.getenv("NAVIGATION_DELAY_MS", "100"))
    COMPLETION_REDIRECT_DELAY_MS: int = int(os.getenv("COMPLETION_REDIRECT_DELAY_MS", "1000"))
    COMPLETION_NAVIGATE_DELAY_MS: int = int(os.getenv("COMPLETION_NAVIGATE_DELAY_MS", "400"))
    EXPIRY_COUNTDOWN_SEC: int = int(os.getenv("EXPIRY_COUNTDOWN_SEC", "10"))

    ENABLE_METRICS: bool = os.getenv("ENABLE_METRICS", "true").lower() == "true"
    ENABLE_PII_REDACTION: bool = os.getenv("ENABLE_PII_REDACTION", "true").lower() == "true"
    ADMIN_RBAC_ENABLED: bool = os.getenv("ADMIN_RBAC_ENABLED", "true").lower() == "true"
    ADMIN_API_KEY: str = os.getenv("ADMIN_API_KEY", "")

settings = Settings()
