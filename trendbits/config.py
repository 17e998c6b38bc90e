"""Environment-driven settings.

Everything the app needs is read from ``os.environ`` (after python-dotenv has
loaded ``trendbits/.env`` and any ``.env`` in the working directory) and
copied into Flask config keys by :func:`load_settings`. Tests pass
``config_overrides`` to the app factory instead of touching the environment.
"""

from __future__ import annotations

import os
from pathlib import Path

_DEFAULT_CORS_ORIGINS = (
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
)


def _env_str(name: str, default: str = "") -> str:
    raw = os.environ.get(name)
    if not isinstance(raw, str):
        return default
    return raw.strip() or default


def _env_int(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"Invalid {name}.")
    if value < minimum:
        raise RuntimeError(f"Invalid {name}.")
    return value


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def normalize_database_uri(uri: str) -> str:
    normalized = uri.strip()
    if normalized.startswith("postgres://"):
        normalized = f"postgresql://{normalized[len('postgres://'):]}"
    if normalized.startswith("postgresql://") and "connect_timeout=" not in normalized:
        joiner = "&" if "?" in normalized else "?"
        normalized = f"{normalized}{joiner}connect_timeout=5"
    return normalized


def effective_database_uri() -> str:
    raw = _env_str("DATABASE_URL")
    if not raw:
        # Local development falls back to a sqlite file next to the package.
        return f"sqlite:///{Path(__file__).with_name('trendbits_dev.sqlite')}"
    return normalize_database_uri(raw)


def cors_origins() -> list[str]:
    raw = _env_str("CORS_ORIGINS")
    if not raw:
        return list(_DEFAULT_CORS_ORIGINS)
    origins = [o.strip().rstrip("/") for o in raw.split(",") if o.strip()]
    if "*" in origins:
        raise RuntimeError(
            "CORS_ORIGINS cannot include '*'. Specify explicit origins instead."
        )
    return origins or list(_DEFAULT_CORS_ORIGINS)


def load_settings() -> dict[str, object]:
    max_attempts = _env_int("DB_MAX_RETRY_ATTEMPTS", 3, minimum=1)
    return {
        "SQLALCHEMY_DATABASE_URI": effective_database_uri(),
        "SQLALCHEMY_TRACK_MODIFICATIONS": False,
        "DB_MAX_RETRY_ATTEMPTS": max_attempts,
        "DB_RETRY_DELAY_MS": _env_int("DB_RETRY_DELAY_MS", 2000),
        "DB_QUERY_RETRIES": _env_int("DB_QUERY_RETRIES", max_attempts),
        "JWT_SECRET": _env_str("JWT_SECRET"),
        "JWT_EXPIRES_DAYS": _env_int("JWT_EXPIRES_DAYS", 7, minimum=1),
        "BCRYPT_ROUNDS": _env_int("BCRYPT_ROUNDS", 12, minimum=4),
        "RESET_TOKEN_EXPIRY_MINUTES": _env_int("RESET_TOKEN_EXPIRY_MINUTES", 60, minimum=1),
        "IP_SALT": _env_str("IP_SALT"),
        "MAX_GUEST_REQUESTS": _env_int("MAX_GUEST_REQUESTS", 2),
        "TRUST_PROXY_HEADERS": _env_flag("TRUST_PROXY_HEADERS", True),
        "GEMINI_API_KEY": _env_str("GEMINI_API_KEY"),
        "GEMINI_MODEL": _env_str("GEMINI_MODEL", "gemini-2.5-flash-lite"),
        "SMTP_HOST": _env_str("SMTP_HOST", "smtp.gmail.com"),
        "SMTP_PORT": _env_int("SMTP_PORT", 587, minimum=1),
        "SMTP_USER": _env_str("SMTP_USER") or _env_str("APP_EMAIL"),
        "SMTP_PASSWORD": _env_str("SMTP_PASSWORD") or _env_str("APP_PASSWORD"),
        "SMTP_USE_TLS": _env_flag("SMTP_USE_TLS", True),
        "APP_EMAIL": _env_str("APP_EMAIL"),
        "WEBAPP_URL": _env_str("WEBAPP_URL", "http://localhost:5173").rstrip("/"),
        "TREND_GENERATE_SECRET": _env_str("TREND_GENERATE_SECRET"),
        "LOG_LEVEL": _env_str("LOG_LEVEL", "INFO").upper(),
        # ── OpenAPI / Flask-Smorest ──
        "API_TITLE": "TrendBits API",
        "API_VERSION": "v1",
        "OPENAPI_VERSION": "3.0.2",
        "OPENAPI_URL_PREFIX": "/",
        "OPENAPI_SWAGGER_UI_PATH": "/swagger-ui",
        "OPENAPI_SWAGGER_UI_URL": "https://cdn.jsdelivr.net/npm/swagger-ui-dist/",
    }
