"""
config.py

Single source of truth for:
- Environment variable reads
- Sweep schedule and pacing
- Notification transport credentials
- Price-watch policy constants

Nothing here should contain route handlers or business logic beyond config resolution.
"""

import os
from typing import List


def _env_bool(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None:
        return default
    s = raw.strip().lower()
    if s in ("1", "true", "yes", "y", "on"):
        return True
    if s in ("0", "false", "no", "n", "off"):
        return False
    return default


def _env_hours(key: str, default: str) -> List[int]:
    raw = os.getenv(key, default) or default
    hours: List[int] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            value = int(part)
        except ValueError:
            continue
        if 0 <= value <= 23:
            hours.append(value)
    return sorted(set(hours))


# =====================================================================
# SECTION: ENV VARS
# =====================================================================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

ADMIN_API_TOKEN = os.getenv("ADMIN_API_TOKEN")

DEFAULT_USER_ID = os.getenv("DEFAULT_USER_ID", "anon")

# Fare provider routing
# Set FLIGHT_PROVIDER=duffel to switch from Amadeus to Duffel.
FLIGHT_PROVIDER = os.getenv("FLIGHT_PROVIDER", "amadeus").lower().strip()

# Amadeus
AMADEUS_HOST = os.getenv("AMADEUS_HOST", "https://test.api.amadeus.com")
AMADEUS_API_KEY = os.getenv("AMADEUS_API_KEY", "")
AMADEUS_API_SECRET = os.getenv("AMADEUS_API_SECRET", "")

# Duffel
DUFFEL_API_BASE = "https://api.duffel.com"
DUFFEL_API_TOKEN = os.getenv("DUFFEL_API_TOKEN") or os.getenv("DUFFEL_ACCESS_TOKEN") or ""

PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "20"))
SEARCH_CACHE_TTL_SECONDS = int(os.getenv("SEARCH_CACHE_TTL_SECONDS", "600"))
SEARCH_MAX_RESULTS = int(os.getenv("SEARCH_MAX_RESULTS", "20"))

# Email transports (first configured wins: SendGrid, Mailgun, SMTP)
SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY")
SENDGRID_FROM_EMAIL = os.getenv("SENDGRID_FROM_EMAIL")
MAILGUN_API_KEY = os.getenv("MAILGUN_API_KEY")
MAILGUN_DOMAIN = os.getenv("MAILGUN_DOMAIN")

SMTP_HOST = os.getenv("SMTP_HOST", "mail-eu.smtp2go.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "2525"))
SMTP_USERNAME = os.getenv("SMTP_USERNAME")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
ALERT_FROM_EMAIL = os.getenv("ALERT_FROM_EMAIL", "price-alert@travel-orchestrator.app")
NOTIFY_TO = os.getenv("NOTIFY_TO")

EMAIL_TIMEOUT_SECONDS = float(os.getenv("EMAIL_TIMEOUT_SECONDS", "30"))

FRONTEND_BASE_URL = os.getenv("FRONTEND_BASE_URL", "http://localhost:3000")

# Sweep scheduling
SWEEP_ENABLED = _env_bool("SWEEP_ENABLED", True)
SWEEP_CRON_HOURS = _env_hours("SWEEP_CRON_HOURS", "9,16")
SWEEP_TIMEZONE = os.getenv("SWEEP_TIMEZONE", "America/Chicago")
SWEEP_DELAY_SECONDS = float(os.getenv("SWEEP_DELAY_SECONDS", "0.5"))
SWEEP_PREVIEW_LIMIT = int(os.getenv("SWEEP_PREVIEW_LIMIT", "10"))

# Trigger policy
NOTIFY_MIN_DROP_USD = float(os.getenv("NOTIFY_MIN_DROP_USD", "1.00"))
AUTO_DEACTIVATE_EXPIRED = _env_bool("AUTO_DEACTIVATE_EXPIRED", True)


# =====================================================================
# SECTION: POLICY CONSTANTS
# Hard limits enforced in code, not overridable by env.
# =====================================================================

ONE_WAY_COMBINATION_CAP = 15
ROUND_TRIP_COMBINATION_CAP = 10

DEFAULT_STAY_NIGHTS = 7
FLEX_STAY_NIGHTS = (5, 9)

MAX_FLEX_DAYS = 30
MAX_STOPS_LIMIT = 5
MAX_ADULTS = 9
