import os


def _env_bool(name, default="false"):
    return os.environ.get(name, default).lower() in ("1", "true", "yes", "on")


class Config:
    APP_NAME = os.environ.get("APP_NAME", "Aurelia")
    SECRET_KEY = os.environ.get("SECRET_KEY", "change-this")
    SQLALCHEMY_DATABASE_URI = os.environ.get("SQLALCHEMY_DATABASE_URI", "sqlite:///aurelia.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_PROTECTION = os.environ.get("SESSION_PROTECTION", "strong")
    PREFERRED_URL_SCHEME = os.environ.get("PREFERRED_URL_SCHEME", "https")
    MAX_CONTENT_LENGTH = int(os.environ.get("MAX_CONTENT_LENGTH", str(16 * 1024 * 1024)))

    # Backend-as-a-service (auth + serverless functions)
    FUNCTIONS_BASE_URL = os.environ.get("FUNCTIONS_BASE_URL", "")
    FUNCTIONS_API_KEY = os.environ.get("FUNCTIONS_API_KEY", "")
    FUNCTIONS_TIMEOUT = float(os.environ.get("FUNCTIONS_TIMEOUT", "20"))

    # Stripe keys
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
    STRIPE_SUCCESS_URL = os.environ.get("STRIPE_SUCCESS_URL", "/dashboard?credits=success")
    STRIPE_CANCEL_URL = os.environ.get("STRIPE_CANCEL_URL", "/dashboard?credits=cancelled")

    # Content generation: functions | openai | anthropic
    CONTENT_AI_PROVIDER = os.environ.get("CONTENT_AI_PROVIDER", "functions")
    OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
    OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4o-mini")
    ANTHROPIC_API_KEY = os.environ.get("ANTHROPIC_API_KEY", "")
    CLAUDE_MODEL = os.environ.get("CLAUDE_MODEL", "claude-3-haiku-20240307")

    # Partner outreach
    OUTREACH_SENDER_NAME = os.environ.get("OUTREACH_SENDER_NAME", "The Aurelia Team")
    OUTREACH_SENDER_EMAIL = os.environ.get("OUTREACH_SENDER_EMAIL", "partnerships@aurelia-concierge.com")
    OUTREACH_SEND_DELAY = float(os.environ.get("OUTREACH_SEND_DELAY", "0.3"))  # seconds between bulk sends

    # Referrals
    REFERRAL_BASE_URL = os.environ.get("REFERRAL_BASE_URL", "https://aurelia-privateconcierge.com/auth")
    REFERRAL_REWARD_CREDITS = int(os.environ.get("REFERRAL_REWARD_CREDITS", "5"))

    # Endpoints watched by the health monitor, comma separated
    HEALTH_ENDPOINTS = tuple(
        e.strip() for e in os.environ.get("HEALTH_ENDPOINTS", "").split(",") if e.strip()
    )
    HEALTH_DEGRADED_MS = int(os.environ.get("HEALTH_DEGRADED_MS", "3000"))
    HEALTH_TIMEOUT = float(os.environ.get("HEALTH_TIMEOUT", "10"))

    # Redis / rate limiting
    REDIS_URL = os.environ.get("REDIS_URL", "")
    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "")
    RATELIMIT_ENABLED = _env_bool("RATELIMIT_ENABLED", "true")

    # Background jobs
    SCHEDULER_ENABLED = _env_bool("SCHEDULER_ENABLED")
    SCHEDULER_MAX_WORKERS = int(os.environ.get("SCHEDULER_MAX_WORKERS", "3"))
    CRON_SECRET = os.environ.get("CRON_SECRET", "")

    # Sentry error tracking and monitoring
    SENTRY_DSN = os.environ.get("SENTRY_DSN", "")
    SENTRY_ENVIRONMENT = os.environ.get("SENTRY_ENVIRONMENT", os.environ.get("ENVIRONMENT", "production"))
    SENTRY_RELEASE = os.environ.get("SENTRY_RELEASE", os.environ.get("GIT_COMMIT", "unknown"))
    SENTRY_TRACES_SAMPLE_RATE = float(os.environ.get("SENTRY_TRACES_SAMPLE_RATE", "0.1"))
    SENTRY_SAMPLE_RATE = float(os.environ.get("SENTRY_SAMPLE_RATE", "1.0"))

    APP_ERROR_LOG = os.environ.get(
        "APP_ERROR_LOG", os.path.join(os.path.expanduser("~"), "aurelia_error.log")
    )
