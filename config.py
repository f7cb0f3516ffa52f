import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


def _float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


def _bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Runtime configuration, read once at process start."""
    database_url: str = "sqlite:///./lead_router.db"
    redis_url: Optional[str] = None

    enrichment_provider: str = "mock"
    clearbit_api_key: Optional[str] = None
    enrichment_timeout: float = 5.0

    hubspot_api_key: Optional[str] = None
    crm_timeout: float = 10.0

    notification_channel: str = "console"
    resend_api_key: Optional[str] = None
    notification_from_email: str = "onboarding@resend.dev"
    leadership_email: Optional[str] = None
    slack_bot_token: Optional[str] = None
    slack_default_channel: str = "#sales-leads"
    notification_timeout: float = 10.0

    app_url: str = "http://localhost:8000"
    stale_threshold_days: int = 5
    routing_lease_seconds: int = 300
    sweep_batch_size: int = 50
    enable_scheduler: bool = False

    log_level: str = "INFO"
    log_file: str = "logs/app.log"


def get_settings() -> Settings:
    """Build settings from the environment (and .env, if present)."""
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./lead_router.db"),
        redis_url=os.getenv("REDIS_URL") or None,
        enrichment_provider=os.getenv("ENRICHMENT_PROVIDER", "mock").lower(),
        clearbit_api_key=os.getenv("CLEARBIT_API_KEY") or None,
        enrichment_timeout=_float("ENRICHMENT_TIMEOUT", 5.0),
        hubspot_api_key=os.getenv("HUBSPOT_API_KEY") or None,
        crm_timeout=_float("CRM_TIMEOUT", 10.0),
        notification_channel=os.getenv("NOTIFICATION_CHANNEL", "console").lower(),
        resend_api_key=os.getenv("RESEND_API_KEY") or None,
        notification_from_email=os.getenv("NOTIFICATION_FROM_EMAIL", "onboarding@resend.dev"),
        leadership_email=os.getenv("LEADERSHIP_EMAIL") or None,
        slack_bot_token=os.getenv("SLACK_BOT_TOKEN") or None,
        slack_default_channel=os.getenv("SLACK_DEFAULT_CHANNEL", "#sales-leads"),
        notification_timeout=_float("NOTIFICATION_TIMEOUT", 10.0),
        app_url=os.getenv("APP_URL", "http://localhost:8000").rstrip("/"),
        stale_threshold_days=_int("STALE_THRESHOLD_DAYS", 5),
        routing_lease_seconds=_int("ROUTING_LEASE_SECONDS", 300),
        sweep_batch_size=_int("SWEEP_BATCH_SIZE", 50),
        enable_scheduler=_bool("ENABLE_SCHEDULER"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_file=os.getenv("LOG_FILE", "logs/app.log"),
    )
