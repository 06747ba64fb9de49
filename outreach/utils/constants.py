from dataclasses import dataclass
import os

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got '{raw}'")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got '{raw}'")


@dataclass
class WorkerSettings:
    """Tunables for the follow-up worker and the health monitor."""
    poll_interval_seconds: int = 30
    batch_size: int = 10
    max_retries: int = 3
    retry_delay_minutes: int = 5
    max_follow_ups: int = 5
    status_confidence_threshold: float = 0.7
    health_check_interval_seconds: int = 300
    health_stale_after_minutes: int = 30
    stale_claim_minutes: int = 15

    @classmethod
    def from_env(cls) -> "WorkerSettings":
        settings = cls(
            poll_interval_seconds=_env_int("FOLLOWUP_POLL_INTERVAL_SECONDS", 30),
            batch_size=_env_int("FOLLOWUP_BATCH_SIZE", 10),
            max_retries=_env_int("FOLLOWUP_MAX_RETRIES", 3),
            retry_delay_minutes=_env_int("FOLLOWUP_RETRY_DELAY_MINUTES", 5),
            max_follow_ups=_env_int("FOLLOWUP_MAX_FOLLOW_UPS", 5),
            status_confidence_threshold=_env_float("STATUS_CONFIDENCE_THRESHOLD", 0.7),
            health_check_interval_seconds=_env_int("HEALTH_CHECK_INTERVAL_SECONDS", 300),
            health_stale_after_minutes=_env_int("HEALTH_STALE_AFTER_MINUTES", 30),
            stale_claim_minutes=_env_int("FOLLOWUP_STALE_CLAIM_MINUTES", 15),
        )
        if not 0.0 <= settings.status_confidence_threshold <= 1.0:
            raise ValueError(
                f"STATUS_CONFIDENCE_THRESHOLD must be between 0 and 1, "
                f"got {settings.status_confidence_threshold}"
            )
        return settings


class Credentials:
    def __init__(self) -> None:
        # Persistence
        self.SUPABASE_URL = os.getenv('SUPABASE_URL')
        self.SUPABASE_SECRET_KEY = os.getenv('SUPABASE_SECRET_KEY') or os.getenv('SUPABASE_SERVICE_ROLE_KEY')
        # Reply generation
        self.ANTHROPIC_API_KEY = os.getenv('ANTHROPIC_API_KEY')
        self.AI_MODEL = os.getenv('AI_MODEL', 'claude-3-5-haiku-20241022')
        # Email (SMTP)
        self.SMTP_SERVER = os.getenv('SMTP_SERVER', 'smtp.gmail.com')
        self.SMTP_PORT = int(os.getenv('SMTP_PORT', '587'))
        self.SMTP_USERNAME = os.getenv('SMTP_USERNAME', '')
        self.SMTP_PASSWORD = os.getenv('SMTP_PASSWORD', '')
        self.SMTP_USE_TLS = os.getenv('SMTP_USE_TLS', 'true').lower() == 'true'
        self.SMTP_DEFAULT_SENDER = os.getenv('SMTP_DEFAULT_SENDER', 'noreply@example.com')
        # Meta platforms
        self.INSTAGRAM_GRAPH_URL = os.getenv('INSTAGRAM_GRAPH_URL', 'https://graph.facebook.com/v18.0')
        self.INSTAGRAM_ACCESS_TOKEN = os.getenv('INSTAGRAM_ACCESS_TOKEN')
        self.WHATSAPP_GRAPH_URL = os.getenv('WHATSAPP_GRAPH_URL', 'https://graph.facebook.com/v18.0')
        self.WHATSAPP_ACCESS_TOKEN = os.getenv('WHATSAPP_ACCESS_TOKEN')
        self.WHATSAPP_PHONE_NUMBER_ID = os.getenv('WHATSAPP_PHONE_NUMBER_ID')
        # Logging
        self.LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

    def get(self, key: str, default=None):
        """Get credential value with optional default (dict-like access)."""
        return getattr(self, key, default)

    def missing(self, *keys: str) -> list:
        return [key for key in keys if not getattr(self, key, None)]

    def require(self, *keys: str) -> None:
        missing = self.missing(*keys)
        if missing:
            raise EnvironmentError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


CHANNEL_CONTEXT = {
    "instagram": "CHANNEL: Instagram DM - Be casual, use emojis sparingly, keep it brief",
    "whatsapp": "CHANNEL: WhatsApp - Be friendly but professional, okay to use 1-2 emojis",
    "email": "CHANNEL: Email - More formal, can be slightly longer, include a subject line",
}

DEFAULT_BUSINESS_NAME = "Your Business"
