from __future__ import annotations

import json
import logging
import uuid

from trendbits.extensions import db
from trendbits.models.auth import utcnow

logger = logging.getLogger(__name__)


def _load_json_list(raw: str | None, *, field: str, row_id: str) -> list:
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except ValueError:
        logger.warning("Unparseable %s on trend_history id=%s", field, row_id)
        return []
    return parsed if isinstance(parsed, list) else []


class TrendHistoryItem(db.Model):
    __tablename__ = "trend_history"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    search_term = db.Column(db.Text, index=True, nullable=False)
    headline = db.Column(db.Text, nullable=False)
    summary = db.Column(db.Text, nullable=False)
    key_points = db.Column(db.Text, nullable=False)
    call_to_action = db.Column(db.Text, nullable=False)
    article_references = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, index=True, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    user = db.relationship("User", back_populates="history")

    __table_args__ = (
        db.Index("idx_trend_history_user_created", "user_id", "created_at"),
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "search_term": self.search_term,
            "headline": self.headline,
            "summary": self.summary,
            "key_points": _load_json_list(self.key_points, field="key_points", row_id=self.id),
            "call_to_action": self.call_to_action,
            "article_references": _load_json_list(
                self.article_references, field="article_references", row_id=self.id
            ),
            "created_at": self.created_at.isoformat() if self.created_at else "",
            "updated_at": self.updated_at.isoformat() if self.updated_at else "",
        }


class HotTopic(db.Model):
    __tablename__ = "hot_topics"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    icon = db.Column(db.String(20), nullable=False)
    title = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(200), nullable=False)
    # "query" would shadow Model.query.
    search_query = db.Column("query", db.Text, nullable=False)
    batch_id = db.Column(db.String(36), index=True, nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, index=True, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict[str, str]:
        return {
            "icon": self.icon,
            "title": self.title,
            "description": self.description,
            "query": self.search_query,
        }
