import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./barberapp.db")

# "sql" (SQLAlchemy) or "firestore"
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "sql").strip().lower()

# Firebase Configuration
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")
# Service account JSON; application default credentials are used when unset
FIREBASE_CREDENTIALS_PATH = os.getenv("FIREBASE_CREDENTIALS_PATH")
# Web API key for the Identity Toolkit REST endpoints (password sign-in / sign-up)
FIREBASE_WEB_API_KEY = os.getenv("FIREBASE_WEB_API_KEY")

# PayPal Configuration
PAYPAL_CLIENT_ID = os.getenv("PAYPAL_CLIENT_ID")
PAYPAL_CLIENT_SECRET = os.getenv("PAYPAL_CLIENT_SECRET")
# "sandbox" or "production" - default to sandbox for safety
PAYPAL_ENVIRONMENT = os.getenv("PAYPAL_ENVIRONMENT", "sandbox")
PAYPAL_PLAN_ID = os.getenv("PAYPAL_PLAN_ID")
PAYPAL_BUTTON_ID = os.getenv("PAYPAL_BUTTON_ID")
# Webhook ID from the PayPal developer dashboard, required for signature verification
PAYPAL_WEBHOOK_ID = os.getenv("PAYPAL_WEBHOOK_ID")
PAYPAL_MAX_RETRIES = int(os.getenv("PAYPAL_MAX_RETRIES", "2"))
PAYPAL_TIMEOUT_SECONDS = float(os.getenv("PAYPAL_TIMEOUT_SECONDS", "15"))

# Subscription rules
TRIAL_DAYS = int(os.getenv("TRIAL_DAYS", "30"))
RENEWAL_WINDOW_DAYS = int(os.getenv("RENEWAL_WINDOW_DAYS", "5"))
NOTIFICATION_INTERVAL_HOURS = int(os.getenv("NOTIFICATION_INTERVAL_HOURS", "24"))
APPOINTMENT_RETENTION_MONTHS = int(os.getenv("APPOINTMENT_RETENTION_MONTHS", "6"))
# Working hours and booking dates are wall-clock times in this zone
BOOKING_TIMEZONE = os.getenv("BOOKING_TIMEZONE", "Europe/Madrid")

# Comma-separated e-mails allowed to call the fleet-wide endpoints
ADMIN_EMAILS = {e.strip().lower() for e in os.getenv("ADMIN_EMAILS", "").split(",") if e.strip()}

# Frontend base URL for links in notifications
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "BarberApp <noreply@barberapp.com>")

# Public endpoints rate limit (requests per minute per IP)
RATE_LIMIT_PER_MINUTE = int(os.getenv("RATE_LIMIT_PER_MINUTE", "1000"))
