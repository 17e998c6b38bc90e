from __future__ import annotations

import uuid
from datetime import datetime, timezone

from trendbits.extensions import db


def utcnow() -> datetime:
    # Columns store naive UTC timestamps.
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = db.Column(db.String(320), unique=True, index=True, nullable=False)
    password_hash = db.Column("password", db.String(255), nullable=False)
    username = db.Column(db.String(30), unique=True, nullable=True)
    reset_token = db.Column(db.String(64), index=True, nullable=True)
    reset_token_expires = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    history = db.relationship(
        "TrendHistoryItem",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    def to_profile(self) -> dict[str, object]:
        return {
            "id": self.id,
            "email": self.email,
            "username": self.username,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
