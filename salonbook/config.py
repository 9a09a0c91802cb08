import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./salonbook.db")

# Tenant defaults (used when a tenant has no site settings row)
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "Europe/Istanbul")
DEFAULT_CANCELLATION_POLICY_HOURS = int(os.getenv("DEFAULT_CANCELLATION_POLICY_HOURS", "24"))
DEFAULT_SLOT_STEP_MINUTES = int(os.getenv("DEFAULT_SLOT_STEP_MINUTES", "30"))

# No-show / blacklist policy
NO_SHOW_GRACE_MINUTES = int(os.getenv("NO_SHOW_GRACE_MINUTES", "60"))
BLACKLIST_THRESHOLD = int(os.getenv("BLACKLIST_THRESHOLD", "3"))

# Reminders fire for appointments starting within +/- this many minutes of now+24h / now+1h
REMINDER_WINDOW_MINUTES = int(os.getenv("REMINDER_WINDOW_MINUTES", "5"))

# Notification delivery
NOTIFICATION_MAX_ATTEMPTS = int(os.getenv("NOTIFICATION_MAX_ATTEMPTS", "3"))
NOTIFICATION_RETRY_DELAY_SECONDS = float(os.getenv("NOTIFICATION_RETRY_DELAY_SECONDS", "2.0"))
NOTIFICATION_WEBHOOK_URL = os.getenv("NOTIFICATION_WEBHOOK_URL")

# Batch job leases - a run that outlives its lease is treated as abandoned
NO_SHOW_JOB_LEASE_SECONDS = int(os.getenv("NO_SHOW_JOB_LEASE_SECONDS", "900"))
REMINDER_JOB_LEASE_SECONDS = int(os.getenv("REMINDER_JOB_LEASE_SECONDS", "600"))
