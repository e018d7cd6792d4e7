import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./shopbook.db")

# Public base URL used in manage / rebook links
APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:3000").rstrip("/")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Pepper mixed into manage token hashes; rotating it invalidates every live manage link
TOKEN_PEPPER = os.getenv("TOKEN_PEPPER")
if not TOKEN_PEPPER:
    import warnings

    warnings.warn(
        "TOKEN_PEPPER not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    TOKEN_PEPPER = "INSECURE-DEV-PEPPER-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

MANAGE_TOKEN_TTL_DAYS = int(os.getenv("MANAGE_TOKEN_TTL_DAYS", "90"))

# Phone numbers without a leading "+" are read as national numbers of this country (TR or US)
DEFAULT_PHONE_COUNTRY = os.getenv("DEFAULT_PHONE_COUNTRY", "TR").upper()

# Email delivery
# EMAIL_PROVIDER: "resend" or "dev"; empty means resend when RESEND_API_KEY is set, else dev
EMAIL_PROVIDER = os.getenv("EMAIL_PROVIDER", "").strip().lower()
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "Shopbook <noreply@shopbook.app>")
EMAIL_SEND_TIMEOUT_SECONDS = float(os.getenv("EMAIL_SEND_TIMEOUT_SECONDS", "20"))

# Outbox sweep
OUTBOX_BATCH_SIZE = int(os.getenv("OUTBOX_BATCH_SIZE", "200"))
NOTIFICATION_SWEEP_INTERVAL_MINUTES = int(os.getenv("NOTIFICATION_SWEEP_INTERVAL_MINUTES", "5"))

# Shared secret for the HTTP-triggered notification cycle (external cron)
CRON_SECRET = os.getenv("CRON_SECRET")

# Redis (rate limiting + arq worker queue)
REDIS_URL = os.getenv("REDIS_URL")
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD")
REDIS_DB = int(os.getenv("REDIS_DB", "0"))
REDIS_SSL = os.getenv("REDIS_SSL", "false").lower() == "true"

# CORS
ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

# JWT issued by the owner/admin dashboard auth service
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
