"""Access tokens and password-reset tokens.

Access tokens are HS256 JWTs carrying ``user_id`` and ``email``. Reset tokens
are opaque random strings; only an HMAC digest of each one is stored on the
user row, so a leaked table does not leak usable tokens.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from trendbits.errors import ServiceNotConfiguredError
from trendbits.models.auth import utcnow

JWT_ALGORITHM = "HS256"


class TokenError(Exception):
    pass


class TokenExpiredError(TokenError):
    pass


class TokenInvalidError(TokenError):
    pass


def _jwt_secret() -> str:
    secret = current_app.config.get("JWT_SECRET")
    if not isinstance(secret, str) or not secret.strip():
        current_app.logger.error("JWT_SECRET is not configured.")
        raise ServiceNotConfiguredError("Authentication is not configured.")
    return secret


def access_token_lifetime() -> timedelta:
    return timedelta(days=int(current_app.config.get("JWT_EXPIRES_DAYS", 7)))


def generate_access_token(user_id: str, email: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "user_id": user_id,
        "email": email,
        "iat": now,
        "exp": now + access_token_lifetime(),
    }
    return jwt.encode(payload, _jwt_secret(), algorithm=JWT_ALGORITHM)


def verify_access_token(token: str) -> dict:
    secret = _jwt_secret()
    if not isinstance(token, str) or not token.strip():
        raise TokenInvalidError("Missing token.")
    try:
        claims = jwt.decode(
            token.strip(),
            secret,
            algorithms=[JWT_ALGORITHM],
            options={"require": ["exp", "iat"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenExpiredError("Token has expired.") from exc
    except jwt.InvalidTokenError as exc:
        raise TokenInvalidError("Token is invalid.") from exc
    if not isinstance(claims.get("user_id"), str) or not isinstance(claims.get("email"), str):
        raise TokenInvalidError("Token is missing identity claims.")
    return claims


def generate_reset_token(*, now: datetime | None = None) -> tuple[str, datetime]:
    """Return a fresh opaque token and its absolute (naive UTC) expiry."""
    minutes = int(current_app.config.get("RESET_TOKEN_EXPIRY_MINUTES", 60))
    issued_at = now or utcnow()
    return secrets.token_urlsafe(32), issued_at + timedelta(minutes=minutes)


def reset_token_digest(token: str) -> str:
    digest = hmac.new(
        _jwt_secret().encode("utf-8"), token.strip().encode("utf-8"), hashlib.sha256
    )
    return digest.hexdigest()
