from __future__ import annotations

import re
from datetime import datetime

from flask import Blueprint, current_app
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from trendbits.errors import (
    ApiError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    RequestValidationError,
)
from trendbits.extensions import db
from trendbits.models import User
from trendbits.models.auth import utcnow
from trendbits.responses import success
from trendbits.routes.common import (
    auth_enumeration_delay,
    is_email_like,
    load_args,
    load_json,
    normalize_email,
)
from trendbits.schemas.auth import (
    AuthEmailSchema,
    AuthLoginSchema,
    AuthPasswordResetSchema,
    AuthRegisterSchema,
    AuthTokenQuerySchema,
    AuthUsernameSchema,
)
from trendbits.services.database import query_with_retry
from trendbits.services.email import send_password_reset_email
from trendbits.services.identity import require_user
from trendbits.services.passwords import (
    MIN_PASSWORD_LENGTH,
    hash_password,
    password_too_long,
    verify_password,
)
from trendbits.services.tokens import (
    access_token_lifetime,
    generate_access_token,
    generate_reset_token,
    reset_token_digest,
)

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30
_USERNAME_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def _require_valid_email(raw: str) -> str:
    email = normalize_email(raw)
    if not is_email_like(email):
        raise RequestValidationError("Invalid email address.")
    return email


def _require_valid_password(password: str) -> str:
    if not password.strip():
        raise RequestValidationError("Password is required.")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise RequestValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
        )
    if password_too_long(password):
        raise RequestValidationError("Password must be at most 72 bytes.")
    return password


def _require_valid_username(raw: str) -> str:
    username = raw.strip()
    if not USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH:
        raise RequestValidationError(
            f"Username must be between {USERNAME_MIN_LENGTH} and {USERNAME_MAX_LENGTH} characters.",
            title="Invalid Username",
        )
    if not _USERNAME_RE.match(username):
        raise RequestValidationError(
            "Username may only contain letters, numbers, dots, dashes and underscores.",
            title="Invalid Username",
        )
    return username


def _email_taken(email: str) -> bool:
    return query_with_retry(
        lambda: db.session.execute(select(User.id).where(User.email == email)).first()
        is not None
    )


def _username_taken(username: str, *, exclude_user_id: str | None = None) -> bool:
    def _op() -> bool:
        stmt = select(User.id).where(User.username == username)
        if exclude_user_id is not None:
            stmt = stmt.where(User.id != exclude_user_id)
        return db.session.execute(stmt).first() is not None

    return query_with_retry(_op)


def _user_by_reset_token(token: str) -> User | None:
    digest = reset_token_digest(token)
    return query_with_retry(
        lambda: db.session.execute(
            select(User).where(
                User.reset_token == digest,
                User.reset_token_expires.is_not(None),
                User.reset_token_expires > utcnow(),
            )
        ).scalar_one_or_none()
    )


def _set_reset_token(user_id: str, digest: str | None, expires_at: datetime | None) -> int:
    table = User.__table__

    def _op() -> int:
        result = db.session.execute(
            update(table)
            .where(table.c.id == user_id)
            .values(reset_token=digest, reset_token_expires=expires_at, updated_at=utcnow())
        )
        db.session.commit()
        return result.rowcount

    return query_with_retry(_op)


def _invalid_reset_token() -> RequestValidationError:
    return RequestValidationError(
        "This password reset link is invalid or has expired. Please request a new one.",
        title="Invalid Reset Token",
    )


def register_auth_routes(app) -> Blueprint:
    auth_blp = Blueprint("auth", __name__, url_prefix="/api/auth")

    @auth_blp.route("/register", methods=["POST"])
    def auth_register():
        data = load_json(AuthRegisterSchema())
        email = _require_valid_email(data["email"])
        password = _require_valid_password(data["password"])
        username_raw = data.get("username")
        username = None
        if isinstance(username_raw, str) and username_raw.strip():
            username = _require_valid_username(username_raw)

        if _email_taken(email):
            raise ConflictError(
                "An account with this email already exists.", title="User Already Exists"
            )
        if username is not None and _username_taken(username):
            raise ConflictError("This username is already taken.", title="Username Taken")

        user = User(email=email, password_hash=hash_password(password), username=username)

        def _create() -> User:
            db.session.add(user)
            db.session.commit()
            return user

        try:
            query_with_retry(_create)
        except IntegrityError:
            # Lost a race against a concurrent registration.
            raise ConflictError(
                "An account with this email or username already exists.",
                title="User Already Exists",
            )

        current_app.logger.info("Registered user id=%s", user.id)
        return success(
            title="Registration Successful",
            message="Your account has been created.",
            data={
                "id": user.id,
                "email": user.email,
                "username": user.username,
                "createdAt": user.created_at.isoformat(),
            },
            status_code=201,
            no_store=True,
        )

    @auth_blp.route("/login", methods=["POST"])
    def auth_login():
        data = load_json(AuthLoginSchema())
        email = normalize_email(data["email"])
        password = data["password"]
        if not email or not password:
            raise RequestValidationError("Email and password are required.")

        user = query_with_retry(
            lambda: db.session.execute(select(User).where(User.email == email)).scalar_one_or_none()
        )
        if user is None or not verify_password(password, user.password_hash):
            auth_enumeration_delay()
            raise AuthenticationError("Invalid email or password.", title="Invalid Credentials")

        token = generate_access_token(user.id, user.email)
        return success(
            title="Login Successful",
            message="Welcome back!",
            data={
                "access_token": token,
                "token_type": "Bearer",
                "expires_in": int(access_token_lifetime().total_seconds()),
                "user": user.to_profile(),
            },
            no_store=True,
        )

    @auth_blp.route("/validate", methods=["GET"])
    def auth_validate():
        _user, ctx = require_user()
        claims = ctx.claims or {}
        return success(
            title="Token Valid",
            message="Your session is active.",
            data={
                "user_id": claims.get("user_id"),
                "email": claims.get("email"),
                "iat": claims.get("iat"),
                "exp": claims.get("exp"),
            },
            no_store=True,
        )

    @auth_blp.route("/request-reset-password", methods=["POST"])
    def auth_request_reset_password():
        data = load_json(AuthEmailSchema())
        email = normalize_email(data["email"])
        if not email:
            raise RequestValidationError("Email is required.")

        user = query_with_retry(
            lambda: db.session.execute(select(User).where(User.email == email)).scalar_one_or_none()
        )
        if user is None:
            auth_enumeration_delay()
            raise NotFoundError(
                "No account found with that email address.", title="User Not Found"
            )

        user_id, user_email = user.id, user.email
        token, expires_at = generate_reset_token()

        if _set_reset_token(user_id, reset_token_digest(token), expires_at) != 1:
            raise NotFoundError(
                "No account found with that email address.", title="User Not Found"
            )
        try:
            send_password_reset_email(to_email=user_email, token=token)
        except ApiError:
            _set_reset_token(user_id, None, None)
            raise

        return success(
            title="Reset Email Sent",
            message="Check your inbox for a link to reset your password.",
            no_store=True,
        )

    @auth_blp.route("/verify-reset-token", methods=["GET"])
    def auth_verify_reset_token():
        data = load_args(AuthTokenQuerySchema())
        user = _user_by_reset_token(data["token"].strip())
        if user is None:
            raise _invalid_reset_token()
        return success(
            title="Token Valid",
            message="The reset token is valid.",
            data={"valid": True, "expiresAt": user.reset_token_expires.isoformat()},
            no_store=True,
        )

    @auth_blp.route("/reset-password", methods=["POST"])
    def auth_reset_password():
        data = load_json(AuthPasswordResetSchema())
        token = data["token"].strip()
        if not token:
            raise RequestValidationError("Reset token is required.")
        password = _require_valid_password(data["password"])
        digest = reset_token_digest(token)
        new_hash = hash_password(password)
        table = User.__table__

        def _consume() -> int:
            now = utcnow()
            result = db.session.execute(
                update(table)
                .where(
                    table.c.reset_token == digest,
                    table.c.reset_token_expires.is_not(None),
                    table.c.reset_token_expires > now,
                )
                .values(
                    password=new_hash,
                    reset_token=None,
                    reset_token_expires=None,
                    updated_at=now,
                )
            )
            db.session.commit()
            return result.rowcount

        if query_with_retry(_consume) != 1:
            raise _invalid_reset_token()
        return success(
            title="Password Reset Successful",
            message="Your password has been updated. You can now sign in.",
            no_store=True,
        )

    @auth_blp.route("/profile", methods=["GET"])
    def auth_profile():
        user, _ctx = require_user()
        return success(
            title="Profile Retrieved",
            message="Successfully retrieved your profile.",
            data=user.to_profile(),
            no_store=True,
        )

    @auth_blp.route("/profile/username", methods=["PUT"])
    def auth_update_username():
        user, _ctx = require_user()
        data = load_json(AuthUsernameSchema())
        username = _require_valid_username(data["username"])
        user_id = user.id
        if _username_taken(username, exclude_user_id=user_id):
            raise ConflictError("This username is already taken.", title="Username Taken")

        table = User.__table__

        def _update() -> int:
            result = db.session.execute(
                update(table)
                .where(table.c.id == user_id)
                .values(username=username, updated_at=utcnow())
            )
            db.session.commit()
            return result.rowcount

        try:
            updated = query_with_retry(_update)
        except IntegrityError:
            raise ConflictError("This username is already taken.", title="Username Taken")
        if updated != 1:
            raise AuthenticationError("Please sign in again to continue.", title="Invalid Session")
        profile = query_with_retry(lambda: db.session.get(User, user_id).to_profile())
        return success(
            title="Username Updated",
            message="Your username has been updated.",
            data=profile,
            no_store=True,
        )

    app.register_blueprint(auth_blp)
    return auth_blp
