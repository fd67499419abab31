# kickbook/app/settings.py
import os
from pathlib import Path
from dotenv import load_dotenv

# Always load the repo-root .env, regardless of CWD
ROOT_ENV = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(dotenv_path=ROOT_ENV)


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    ENV = os.getenv("ENV", "local")
    DEBUG = _flag("DEBUG")

    # ----------------------------------------------------------------------
    # Database
    # ----------------------------------------------------------------------
    DATABASE_URL = os.getenv("DATABASE_URL", "")
    PGHOST = os.getenv("PGHOST", "localhost")
    PGPORT = int(os.getenv("PGPORT", "5432"))
    PGUSER = os.getenv("PGUSER", "kickbook")
    PGPASSWORD = os.getenv("PGPASSWORD", "kickbook")
    PGDATABASE = os.getenv("PGDATABASE", "kickbook")

    # ----------------------------------------------------------------------
    # Sessions / CORS
    # ----------------------------------------------------------------------
    SESSION_SECRET = os.getenv("SESSION_SECRET", "kickbook-dev-secret")
    SESSION_MAX_AGE = int(os.getenv("SESSION_MAX_AGE", str(24 * 60 * 60)))
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
    FRONTEND_BASE_URL = os.getenv("FRONTEND_BASE_URL", "http://localhost:5173")
    APP_URL = os.getenv("APP_URL", "http://localhost:8000")

    # ----------------------------------------------------------------------
    # Credits
    # ----------------------------------------------------------------------
    CREDIT_PURCHASE_MIN = int(os.getenv("CREDIT_PURCHASE_MIN", "5"))
    CREDIT_PURCHASE_MAX = int(os.getenv("CREDIT_PURCHASE_MAX", "1000"))
    # price of one credit in the smallest currency unit
    CREDIT_PRICE_CENTS = int(os.getenv("CREDIT_PRICE_CENTS", "100"))
    CREDIT_CURRENCY = os.getenv("CREDIT_CURRENCY", "gbp")

    # ----------------------------------------------------------------------
    # Stripe
    # ----------------------------------------------------------------------
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
    STRIPE_PRICE_ID_PRO = os.getenv("STRIPE_PRICE_ID_PRO", "")
    STRIPE_PRICE_ID_ENTERPRISE = os.getenv("STRIPE_PRICE_ID_ENTERPRISE", "")

    # ----------------------------------------------------------------------
    # Weather
    # ----------------------------------------------------------------------
    OPENWEATHER_API_KEY = os.getenv("OPENWEATHER_API_KEY", "")
    WEATHER_CACHE_HOURS = int(os.getenv("WEATHER_CACHE_HOURS", "12"))
    WEATHER_LOOKAHEAD_DAYS = int(os.getenv("WEATHER_LOOKAHEAD_DAYS", "7"))

    # ----------------------------------------------------------------------
    # Google Calendar
    # ----------------------------------------------------------------------
    GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
    GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")
    GOOGLE_REDIRECT_URI = os.getenv(
        "GOOGLE_REDIRECT_URI", "http://localhost:8000/api/calendar/google/callback"
    )

    # ----------------------------------------------------------------------
    # WhatsApp Cloud API
    # ----------------------------------------------------------------------
    WHATSAPP_API_KEY = os.getenv("WHATSAPP_API_KEY", "")
    WHATSAPP_PHONE_NUMBER_ID = os.getenv("WHATSAPP_PHONE_NUMBER_ID", "")
    WHATSAPP_BASE_URL = os.getenv("WHATSAPP_BASE_URL", "https://graph.facebook.com/v19.0")

    # ----------------------------------------------------------------------
    # Worker
    # ----------------------------------------------------------------------
    REMINDER_INTERVAL_SEC = int(os.getenv("REMINDER_INTERVAL_SEC", str(60 * 60)))
    WEATHER_INTERVAL_SEC = int(os.getenv("WEATHER_INTERVAL_SEC", str(12 * 60 * 60)))


settings = Settings()
