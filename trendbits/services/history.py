from __future__ import annotations

import json
import math

from sqlalchemy import func, or_, select

from trendbits.extensions import db
from trendbits.models import TrendHistoryItem
from trendbits.services.ai_response import filter_references
from trendbits.services.database import query_with_retry
from trendbits.text import clean_text


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def save_history_item(
    *,
    user_id: str,
    search_term: str,
    headline: str,
    summary: str,
    key_points: list[str],
    call_to_action: str,
    article_references: list | None = None,
) -> TrendHistoryItem:
    references = filter_references(article_references or [])
    item = TrendHistoryItem(
        user_id=user_id,
        search_term=clean_text(search_term),
        headline=clean_text(headline),
        summary=clean_text(summary),
        key_points=json.dumps([clean_text(point) for point in key_points]),
        call_to_action=clean_text(call_to_action),
        article_references=json.dumps(references) if references else None,
    )

    def _op() -> TrendHistoryItem:
        db.session.add(item)
        db.session.commit()
        return item

    return query_with_retry(_op)


def get_history_item(*, user_id: str, item_id: str) -> TrendHistoryItem | None:
    return query_with_retry(
        lambda: db.session.execute(
            select(TrendHistoryItem).where(
                TrendHistoryItem.id == item_id, TrendHistoryItem.user_id == user_id
            )
        ).scalar_one_or_none()
    )


def pagination_meta(*, page: int, limit: int, total: int) -> dict[str, object]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "current_page": page,
        "total_pages": total_pages,
        "total_items": total,
        "items_per_page": limit,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }


def list_history(
    *, user_id: str, page: int, limit: int, search: str | None = None
) -> tuple[list[TrendHistoryItem], int]:
    """Return one page of the user's history, newest first, and the total count."""
    conditions = [TrendHistoryItem.user_id == user_id]
    if search:
        pattern = f"%{escape_like(search)}%"
        conditions.append(
            or_(
                TrendHistoryItem.search_term.ilike(pattern, escape="\\"),
                TrendHistoryItem.headline.ilike(pattern, escape="\\"),
                TrendHistoryItem.summary.ilike(pattern, escape="\\"),
            )
        )

    def _op() -> tuple[list[TrendHistoryItem], int]:
        total = db.session.execute(
            select(func.count()).select_from(TrendHistoryItem).where(*conditions)
        ).scalar_one()
        items = (
            db.session.execute(
                select(TrendHistoryItem)
                .where(*conditions)
                .order_by(TrendHistoryItem.created_at.desc(), TrendHistoryItem.id.desc())
                .limit(limit)
                .offset((page - 1) * limit)
            )
            .scalars()
            .all()
        )
        return list(items), int(total)

    return query_with_retry(_op)


def delete_history_item(*, user_id: str, item_id: str) -> bool:
    def _op() -> bool:
        item = db.session.execute(
            select(TrendHistoryItem).where(
                TrendHistoryItem.id == item_id, TrendHistoryItem.user_id == user_id
            )
        ).scalar_one_or_none()
        if item is None:
            return False
        db.session.delete(item)
        db.session.commit()
        return True

    return query_with_retry(_op)
