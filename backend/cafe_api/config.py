# backend/cafe_api/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/cafe.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///cafe.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bearer tokens (HS256). Keep the secret >= 32 bytes in production.
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "dev-jwt-secret-change-me-0123456789abcdef")
    JWT_EXPIRY_HOURS = _int_env("JWT_EXPIRY_HOURS", 24)

    BCRYPT_ROUNDS = _int_env("BCRYPT_ROUNDS", 12)

    # In-memory credential registries
    CSRF_TOKEN_TTL_MINUTES = _int_env("CSRF_TOKEN_TTL_MINUTES", 60)
    CSRF_MAX_TOKENS_PER_USER = _int_env("CSRF_MAX_TOKENS_PER_USER", 10)
    API_KEY_TTL_DAYS = _int_env("API_KEY_TTL_DAYS", 90)
    API_KEY_ROTATION_WARNING_DAYS = _int_env("API_KEY_ROTATION_WARNING_DAYS", 7)
    API_KEY_GRACE_DAYS = _int_env("API_KEY_GRACE_DAYS", 30)

    # Login throttling
    LOGIN_MAX_FAILED_ATTEMPTS = _int_env("LOGIN_MAX_FAILED_ATTEMPTS", 5)
    LOGIN_LOCKOUT_MINUTES = _int_env("LOGIN_LOCKOUT_MINUTES", 15)

    ORDER_TAX_RATE = os.environ.get("ORDER_TAX_RATE", "0.10")

    # Uploads larger than this are rejected by Werkzeug with 413
    MAX_CONTENT_LENGTH = _int_env("MAX_CONTENT_LENGTH", 10 * 1024 * 1024)

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:4200,http://127.0.0.1:4200",
        ).split(",")
        if origin.strip()
    ]

    AUDIT_RETENTION_DAYS = _int_env("AUDIT_RETENTION_DAYS", 90)

    # Costing
    INGREDIENT_PRICE_ALERT_PERCENT = _int_env("INGREDIENT_PRICE_ALERT_PERCENT", 10)
    PLATFORM_CHARGE_LOOKBACK_DAYS = _int_env("PLATFORM_CHARGE_LOOKBACK_DAYS", 90)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
