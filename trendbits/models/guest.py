from __future__ import annotations

import uuid

from trendbits.extensions import db
from trendbits.models.auth import utcnow


class GuestRequest(db.Model):
    __tablename__ = "guest_requests"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # HMAC of the client IP; the raw address is never stored.
    ip_address = db.Column(db.String(64), unique=True, index=True, nullable=False)
    request_count = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
