from __future__ import annotations

import bcrypt
from flask import current_app

# bcrypt only looks at the first 72 bytes of its input.
BCRYPT_MAX_BYTES = 72
MIN_PASSWORD_LENGTH = 8


def _rounds() -> int:
    return int(current_app.config.get("BCRYPT_ROUNDS", 12))


def password_too_long(plaintext: str) -> bool:
    return len(plaintext.encode("utf-8")) > BCRYPT_MAX_BYTES


def hash_password(plaintext: str, *, rounds: int | None = None) -> str:
    if not isinstance(plaintext, str) or not plaintext.strip():
        raise ValueError("Password cannot be empty.")
    salt = bcrypt.gensalt(rounds=rounds if rounds is not None else _rounds())
    return bcrypt.hashpw(plaintext.encode("utf-8"), salt).decode("utf-8")


def verify_password(plaintext: str, hashed: str) -> bool:
    if not plaintext or not hashed:
        raise ValueError("Password and hash are required.")
    if password_too_long(plaintext):
        return False
    try:
        return bcrypt.checkpw(plaintext.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash.
        return False
