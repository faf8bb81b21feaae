import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


def _csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./consultbook.db")

# Firebase Configuration (token verification only; identity is managed by Firebase)
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")
ADMIN_UIDS = set(_csv(os.getenv("ADMIN_UIDS", "")))

# Recipient for admin-facing notification queue entries
ADMIN_NOTIFICATION_EMAIL = os.getenv("ADMIN_NOTIFICATION_EMAIL", "admin@example.com")

# Pricing policy (EUR, major units)
SESSION_RATE_INITIAL = float(os.getenv("SESSION_RATE_INITIAL", "95.00"))
SESSION_RATE_FOLLOW_UP = float(os.getenv("SESSION_RATE_FOLLOW_UP", "75.00"))
NO_SHOW_PENALTY_RATIO = float(os.getenv("NO_SHOW_PENALTY_RATIO", "0.5"))
LATE_RESCHEDULE_FEE = float(os.getenv("LATE_RESCHEDULE_FEE", "5.00"))
INVOICE_CURRENCY = os.getenv("INVOICE_CURRENCY", "EUR")
INVOICE_DUE_DAYS = int(os.getenv("INVOICE_DUE_DAYS", "14"))

# Reschedule requests made more than GRACE and at most WINDOW hours before
# the session start carry the late reschedule fee. Plain clock hours.
LATE_RESCHEDULE_WINDOW_HOURS = float(os.getenv("LATE_RESCHEDULE_WINDOW_HOURS", "4"))
LATE_RESCHEDULE_GRACE_HOURS = float(os.getenv("LATE_RESCHEDULE_GRACE_HOURS", "1"))

# Complete Program subscription
PROGRAM_LENGTH_MONTHS = int(os.getenv("PROGRAM_LENGTH_MONTHS", "3"))
PROGRAM_EXPIRY_WARNING_DAYS = int(os.getenv("PROGRAM_EXPIRY_WARNING_DAYS", "14"))

# Bookable slot grid (30-minute sessions starting on the hour)
DEFAULT_TIMESLOTS = _csv(
    os.getenv("DEFAULT_TIMESLOTS", "09:00,10:00,11:00,13:00,14:00,15:00,16:00,17:00")
)

# CORS
ALLOWED_ORIGINS = _csv(os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000"))
