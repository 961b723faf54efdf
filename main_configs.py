import logging
import os
from typing import Optional

from dotenv import load_dotenv


# ============================================================
# Environment bootstrap
# ============================================================
# Load variables from .env early.
# override=True allows local dev to intentionally shadow system envs.
load_dotenv(override=True)


# ============================================================
# Logging Configuration
# ============================================================
# LOG_LEVEL is expected to be something like: DEBUG, INFO, WARNING, ERROR
# Default to INFO if missing or invalid.
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


def _env_int(name: str, default: str) -> int:
    try:
        return int(os.getenv(name, default))
    except ValueError:
        raise RuntimeError(f"{name} must be a valid integer")


# ============================================================
# Application Metadata
# ============================================================
MAIN_APP_HOST: str = os.getenv("MAIN_APP_HOST", "0.0.0.0")

# Port parsing should be strict: invalid values must fail fast
MAIN_APP_PORT: int = _env_int("MAIN_APP_PORT", "8000")

MAIN_APP_TITLE: str = os.getenv("MAIN_APP_TITLE", "Growth Data Plane API")
MAIN_APP_DESCRIPTION: str = os.getenv(
    "MAIN_APP_DESCRIPTION",
    "Identity stitching, event ingestion, behavioral features and segment automations",
)
MAIN_APP_VERSION: str = os.getenv("MAIN_APP_VERSION", "1.0.0")

# When set, every /growth route requires a matching `x-api-key` header.
GROWTH_API_KEY: Optional[str] = os.getenv("GROWTH_API_KEY")


# ============================================================
# CORS Configuration
# ============================================================
# Using "*" with credentials=True is NOT allowed by browsers.
# Replace "*" with explicit origins when deploying.
CORS_ALLOW_ORIGINS = [
    o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()
]
CORS_ALLOW_CREDENTIALS: bool = True
CORS_ALLOW_METHODS = ["*"]
CORS_ALLOW_HEADERS = ["*"]


# ============================================================
# Celery / Redis
# ============================================================
CELERY_REDIS_URL: str = os.getenv("CELERY_REDIS_URL", "redis://localhost:6379/0")

# 5-field cron expressions for the scheduled batch jobs
CELERY_RECOMPUTE_FEATURES_CRON: str = os.getenv("CELERY_RECOMPUTE_FEATURES_CRON", "*/30 * * * *")
CELERY_EVALUATE_SEGMENTS_CRON: str = os.getenv("CELERY_EVALUATE_SEGMENTS_CRON", "15 * * * *")


# ============================================================
# Growth Integrations Configuration
# ============================================================
class GrowthConfigs:
    """
    Centralized configuration holder for the growth data plane integrations.

    Class attributes are read once at import time so business logic never
    touches os.getenv() directly. Tests override them with monkeypatch.
    """

    # --------------------------------------------------------
    # Meta (ad platform): Conversions API + Custom Audiences
    # --------------------------------------------------------
    META_GRAPH_API_URL: str = os.getenv("META_GRAPH_API_URL", "https://graph.facebook.com")
    META_GRAPH_API_VERSION: str = os.getenv("META_GRAPH_API_VERSION", "v18.0")
    META_PIXEL_ID: Optional[str] = os.getenv("META_PIXEL_ID")
    META_CAPI_ACCESS_TOKEN: Optional[str] = os.getenv("META_CAPI_ACCESS_TOKEN")
    META_CAPI_TEST_CODE: Optional[str] = os.getenv("META_CAPI_TEST_CODE")
    META_ACCESS_TOKEN: Optional[str] = os.getenv("META_ACCESS_TOKEN")

    # --------------------------------------------------------
    # Resend (email audiences + engagement webhooks)
    # --------------------------------------------------------
    RESEND_API_URL: str = os.getenv("RESEND_API_URL", "https://api.resend.com")
    RESEND_API_KEY: Optional[str] = os.getenv("RESEND_API_KEY")
    RESEND_WEBHOOK_SECRET: Optional[str] = os.getenv("RESEND_WEBHOOK_SECRET")

    # --------------------------------------------------------
    # Outbound segment webhooks
    # --------------------------------------------------------
    WEBHOOK_SIGNING_SECRET: Optional[str] = os.getenv("WEBHOOK_SIGNING_SECRET")

    HTTP_TIMEOUT_SECONDS: int = _env_int("GROWTH_HTTP_TIMEOUT_SECONDS", "10")

    # --------------------------------------------------------
    # Jobs
    # --------------------------------------------------------
    RECENT_ACTIVITY_DAYS: int = _env_int("GROWTH_RECENT_ACTIVITY_DAYS", "7")
    BATCH_MAX_WORKERS: int = _env_int("GROWTH_BATCH_MAX_WORKERS", "4")

    AUTOMATION_MAX_RETRIES: int = _env_int("GROWTH_AUTOMATION_MAX_RETRIES", "3")

    # "inline" runs automations in-process, "celery" enqueues them
    AUTOMATION_DISPATCH_MODE: str = os.getenv("GROWTH_AUTOMATION_DISPATCH_MODE", "inline").lower()
