"""Per-request caller identity: signed-in user, quota-limited guest, or neither.

Bearer-only endpoints call :func:`require_user`. The summary endpoint calls
:func:`resolve_guest_or_user`, which falls back to guest handling whenever the
bearer token is absent, invalid, expired or names a deleted account.
"""

from __future__ import annotations

import hashlib
import hmac

from flask import current_app, g, request
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from trendbits.errors import (
    AuthenticationError,
    AuthorizationQuotaError,
    ServiceNotConfiguredError,
)
from trendbits.extensions import db
from trendbits.models import GuestRequest, User
from trendbits.models.auth import utcnow
from trendbits.services.database import query_with_retry
from trendbits.services.tokens import (
    TokenError,
    TokenExpiredError,
    verify_access_token,
)

_FALLBACK_IP = "127.0.0.1"


class AccessContext:
    def __init__(
        self,
        *,
        tier: str,
        user_id: str | None = None,
        email: str | None = None,
        ip_hash: str | None = None,
        request_count: int | None = None,
        claims: dict | None = None,
    ):
        self.tier = tier
        self.user_id = user_id
        self.email = email
        self.ip_hash = ip_hash
        self.request_count = request_count
        self.claims = claims

    @property
    def is_authenticated(self) -> bool:
        return self.tier == "user" and self.user_id is not None

    @property
    def is_guest(self) -> bool:
        return self.tier == "guest"

    def guest_meta(self) -> dict[str, int] | None:
        if not self.is_guest:
            return None
        max_requests = int(current_app.config.get("MAX_GUEST_REQUESTS", 2))
        count = self.request_count or 0
        return {
            "request_count": count,
            "max_requests": max_requests,
            "remaining": max(0, max_requests - count),
        }


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    token = auth_header.removeprefix("Bearer ").strip()
    return token or None


def request_ip_address() -> str:
    if current_app.config.get("TRUST_PROXY_HEADERS", True):
        for header in ("CF-Connecting-IP", "X-Real-IP"):
            value = request.headers.get(header)
            if isinstance(value, str) and value.strip():
                return value.strip()
        forwarded_for = request.headers.get("X-Forwarded-For")
        if isinstance(forwarded_for, str) and forwarded_for.strip():
            first = forwarded_for.split(",", 1)[0].strip()
            if first:
                return first
    remote = request.remote_addr
    if isinstance(remote, str) and remote.strip():
        return remote.strip()
    return _FALLBACK_IP


def ip_hash(value: str) -> str:
    secret = current_app.config.get("IP_SALT")
    if not isinstance(secret, str) or not secret.strip():
        current_app.logger.error("IP_SALT is not configured; refusing guest access.")
        raise ServiceNotConfiguredError("Guest access is not configured.")
    digest = hmac.new(secret.encode("utf-8"), value.strip().encode("utf-8"), hashlib.sha256)
    return digest.hexdigest()


def _load_user(user_id: str) -> User | None:
    return query_with_retry(lambda: db.session.get(User, user_id))


def require_user() -> tuple[User, AccessContext]:
    token = bearer_token()
    if token is None:
        raise AuthenticationError()
    try:
        claims = verify_access_token(token)
    except TokenExpiredError:
        raise AuthenticationError(
            "Your session has expired. Please sign in again.", title="Session Expired"
        )
    except TokenError:
        raise AuthenticationError(
            "Please sign in again to continue.", title="Invalid Session"
        )
    user = _load_user(claims["user_id"])
    if user is None:
        raise AuthenticationError("Please sign in again to continue.", title="Invalid Session")
    ctx = AccessContext(tier="user", user_id=user.id, email=user.email, claims=claims)
    g.access_ctx = ctx
    return user, ctx


def _authenticated_context(token: str) -> AccessContext | None:
    try:
        claims = verify_access_token(token)
    except TokenError:
        return None
    user = _load_user(claims["user_id"])
    if user is None:
        return None
    return AccessContext(tier="user", user_id=user.id, email=user.email, claims=claims)


def _increment_guest(hashed_ip: str, max_requests: int) -> int | None:
    table = GuestRequest.__table__
    stmt = (
        update(table)
        .where(table.c.ip_address == hashed_ip, table.c.request_count < max_requests)
        .values(request_count=table.c.request_count + 1, updated_at=utcnow())
        .returning(table.c.request_count)
    )
    return db.session.execute(stmt).scalar_one_or_none()


def _guest_exists(hashed_ip: str) -> bool:
    return (
        db.session.execute(
            select(GuestRequest.id).where(GuestRequest.ip_address == hashed_ip)
        ).first()
        is not None
    )


def admit_guest(hashed_ip: str, max_requests: int) -> int | None:
    """Count one guest request; return the new count, or None at the ceiling."""

    def _op() -> int | None:
        count = _increment_guest(hashed_ip, max_requests)
        if count is not None:
            db.session.commit()
            return count
        if max_requests < 1 or _guest_exists(hashed_ip):
            db.session.rollback()
            return None
        db.session.add(GuestRequest(ip_address=hashed_ip, request_count=1))
        try:
            db.session.commit()
            return 1
        except IntegrityError:
            # Another request created the row first.
            db.session.rollback()
        count = _increment_guest(hashed_ip, max_requests)
        db.session.commit()
        return count

    return query_with_retry(_op)


def resolve_guest_or_user() -> AccessContext:
    cached = getattr(g, "access_ctx", None)
    if isinstance(cached, AccessContext):
        return cached

    token = bearer_token()
    if token is not None:
        ctx = _authenticated_context(token)
        if ctx is not None:
            g.access_ctx = ctx
            return ctx

    hashed_ip = ip_hash(request_ip_address())
    max_requests = int(current_app.config.get("MAX_GUEST_REQUESTS", 2))
    count = admit_guest(hashed_ip, max_requests)
    if count is None:
        current_app.logger.info("Guest quota reached for ip_hash=%s", hashed_ip[:12])
        raise AuthorizationQuotaError(
            f"You've reached the limit of {max_requests} free prompts. "
            "Please sign up to continue using TrendBits.",
            data={"requires_signup": True, "max_requests": max_requests},
        )
    ctx = AccessContext(tier="guest", ip_hash=hashed_ip, request_count=count)
    g.access_ctx = ctx
    return ctx
