import os
import warnings
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


# Application
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")  # development, production, test
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
APP_URL = os.getenv("APP_URL", "http://localhost:8000").rstrip("/")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./sessionpay.db")

# Google Calendar (OAuth refresh-token flow, single practice calendar)
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_REFRESH_TOKEN = os.getenv("GOOGLE_REFRESH_TOKEN")
GOOGLE_CALENDAR_ID = os.getenv("GOOGLE_CALENDAR_ID", "primary")

# Mercado Pago Configuration
MP_API_URL = os.getenv("MP_API_URL", "https://api.mercadopago.com").rstrip("/")
MP_ACCESS_TOKEN = os.getenv("MP_ACCESS_TOKEN")
MP_WEBHOOK_SECRET = os.getenv("MP_WEBHOOK_SECRET")  # Secret signature from the MP dashboard

# Twilio WhatsApp Configuration
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_WHATSAPP_NUMBER = os.getenv("TWILIO_WHATSAPP_NUMBER")  # e.g. whatsapp:+14155238886

# Practice settings (one practice per deployment)
SESSION_PRICE = float(os.getenv("SESSION_PRICE", "15000"))
SESSION_CURRENCY = os.getenv("SESSION_CURRENCY", "ARS")
PRACTICE_TIMEZONE = os.getenv("PRACTICE_TIMEZONE", "America/Argentina/Buenos_Aires")

# Notification windows, in minutes before the session starts
REMINDER_24H_MIN_OFFSET = int(os.getenv("REMINDER_24H_MIN_OFFSET", "1380"))
REMINDER_24H_MAX_OFFSET = int(os.getenv("REMINDER_24H_MAX_OFFSET", "1440"))
REMINDER_2H_MIN_OFFSET = int(os.getenv("REMINDER_2H_MIN_OFFSET", "60"))
REMINDER_2H_MAX_OFFSET = int(os.getenv("REMINDER_2H_MAX_OFFSET", "120"))
MEET_LINK_MIN_OFFSET = int(os.getenv("MEET_LINK_MIN_OFFSET", "0"))
MEET_LINK_MAX_OFFSET = int(os.getenv("MEET_LINK_MAX_OFFSET", "15"))

# Calendar event filtering
CALENDAR_LOOKAHEAD_HOURS = int(os.getenv("CALENDAR_LOOKAHEAD_HOURS", "48"))
SESSION_MIN_DURATION = int(os.getenv("SESSION_MIN_DURATION", "30"))
SESSION_MAX_DURATION = int(os.getenv("SESSION_MAX_DURATION", "90"))

PAYMENT_LINK_TTL_HOURS = int(os.getenv("PAYMENT_LINK_TTL_HOURS", "24"))

# Scheduler
SESSION_MONITOR_CRON = os.getenv("SESSION_MONITOR_CRON", "0 * * * *")  # hourly at minute 0
SCHEDULER_ENABLED = _env_bool("SCHEDULER_ENABLED", "true")
# Run once at startup outside production unless told otherwise
RUN_JOB_ON_START = _env_bool(
    "RUN_JOB_ON_START", "false" if ENVIRONMENT == "production" else "true"
)

# Upper bound for every outbound call to Google, Mercado Pago and Twilio
GATEWAY_TIMEOUT_SECONDS = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "15"))

# Shared secret for the job control endpoints; unset disables them
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY")

# Only used by the arq worker (out-of-process scheduling)
REDIS_URL = os.getenv("REDIS_URL")

if ENVIRONMENT == "production":
    for _name in ("MP_ACCESS_TOKEN", "TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "GOOGLE_REFRESH_TOKEN"):
        if not os.getenv(_name):
            warnings.warn(f"{_name} not set! Related gateway calls will fail", RuntimeWarning, stacklevel=2)
