"""Application configuration with security-first defaults.

Environment variables override all defaults.
CRITICAL: SECRET_KEY must be set in .env - will fail fast if missing in production.
"""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

_BACKEND_DIR = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=_BACKEND_DIR / ".env", override=False)


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _as_list(value: str) -> List[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


class Settings:
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    DEBUG: bool = ENVIRONMENT == "development"

    # Database Configuration
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./quickpharma.db")

    # JWT Security - CRITICAL
    SECRET_KEY: str = os.getenv("SECRET_KEY", None)
    if not SECRET_KEY:
        # Generate with: python -c "import secrets; print(secrets.token_urlsafe(32))"
        if ENVIRONMENT == "production":
            raise ValueError(
                "SECRET_KEY must be set in production environment. "
                "Generate with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
            )
        import warnings
        warnings.warn(
            "SECRET_KEY not set in environment. Using development default. "
            "Set SECRET_KEY in .env to a strong random value.",
            RuntimeWarning
        )
        SECRET_KEY = "development-only-weak-default-change-in-production"

    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
    AUTH_COOKIE_NAME: str = "quickpharma_token"

    # CORS (specific origins only, no wildcards)
    CORS_ORIGINS: List[str] = _as_list(
        os.getenv("CORS_ORIGINS", "http://localhost:5173,https://localhost:5173,http://127.0.0.1:5173")
    )
    ALLOWED_HOSTS: List[str] = _as_list(
        os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver")
    )

    # Cookies
    SECURE_COOKIES: bool = ENVIRONMENT == "production"
    SAME_SITE_COOKIE: str = "strict"

    # Rate Limiting
    RATE_LIMIT_REQUESTS: int = int(os.getenv("RATE_LIMIT_REQUESTS", "300"))
    RATE_LIMIT_WINDOW_SECONDS: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
    AUTH_RATE_LIMIT_REQUESTS: int = int(os.getenv("AUTH_RATE_LIMIT_REQUESTS", "30"))

    # Password Policy
    MIN_PASSWORD_LENGTH: int = int(os.getenv("MIN_PASSWORD_LENGTH", "8"))
    REQUIRE_SPECIAL_CHARS: bool = True
    REQUIRE_NUMBERS: bool = True
    MAX_FAILED_LOGINS: int = 3

    # Outbound email (SMTP). Empty host = log-only delivery.
    SMTP_HOST: str = os.getenv("SMTP_HOST", "")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USER: str = os.getenv("SMTP_USER", "")
    SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
    SMTP_FROM: str = os.getenv("SMTP_FROM", "no-reply@quickpharmaplus.local")
    SMTP_USE_TLS: bool = _as_bool(os.getenv("SMTP_USE_TLS", "true"))

    # Payment gateway (Stripe REST API)
    STRIPE_SECRET_KEY: str = os.getenv("STRIPE_SECRET_KEY", "")
    STRIPE_API_BASE: str = os.getenv("STRIPE_API_BASE", "https://api.stripe.com/v1")
    STRIPE_CURRENCY: str = os.getenv("STRIPE_CURRENCY", "usd")
    PAYMENT_TIMEOUT_SECONDS: int = int(os.getenv("PAYMENT_TIMEOUT_SECONDS", "15"))
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "https://localhost:5173")

    # Store business rules
    LOCAL_UTC_OFFSET_HOURS: int = int(os.getenv("LOCAL_UTC_OFFSET_HOURS", "3"))
    DELIVERY_FEE: int = int(os.getenv("DELIVERY_FEE", "1"))
    NORMAL_SLOT_CAPACITY: int = int(os.getenv("NORMAL_SLOT_CAPACITY", "9"))
    URGENT_SLOT_CAPACITY: int = int(os.getenv("URGENT_SLOT_CAPACITY", "1"))
    BOOKING_WINDOW_DAYS: int = 6
    LOW_STOCK_THRESHOLD: int = 5

    # Background scheduler
    PLAN_EMAIL_SCHEDULER_ENABLED: bool = _as_bool(os.getenv("PLAN_EMAIL_SCHEDULER_ENABLED", "true"))
    PLAN_EMAIL_SCAN_INTERVAL_SECONDS: int = int(os.getenv("PLAN_EMAIL_SCAN_INTERVAL_SECONDS", "900"))
    PRESCRIPTION_EXPIRY_SWEEP_ENABLED: bool = _as_bool(os.getenv("PRESCRIPTION_EXPIRY_SWEEP_ENABLED", "true"))


settings = Settings()
