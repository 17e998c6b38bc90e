"""Scheduled hot-topic batches.

A generation run asks the model for six AI trends, stores them under a shared
``batch_id`` and purges rows older than :data:`RETENTION`. Readers always get
the newest batch.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, select

from trendbits.errors import UpstreamAIError
from trendbits.extensions import db
from trendbits.models import HotTopic
from trendbits.models.auth import utcnow
from trendbits.services.ai_response import validate_hot_topics
from trendbits.services.database import query_with_retry
from trendbits.services.gemini import ai_client

logger = logging.getLogger(__name__)

RETENTION = timedelta(days=7)


@dataclass
class StoredBatch:
    batch_id: str
    generated_at: datetime
    topics: list[dict[str, str]]

HOT_TOPICS_SYSTEM_INSTRUCTION = (
    "You are a trend analyst specializing in artificial intelligence developments. Your job "
    "is to identify and summarize the most current and relevant AI trends.\n\n"
    "Always return valid JSON arrays only. Never include markdown, explanations, or any text "
    "outside the JSON structure.\n\n"
    "Keep titles concise and impactful. Descriptions should be informative but brief. Queries "
    "should be comprehensive search terms that would yield relevant results.\n\n"
    "Focus on recent developments (within the last 3-6 months) and emerging trends that would "
    "interest tech professionals and AI enthusiasts."
)

HOT_TOPICS_PROMPT = """\
You are an AI trend analyst for TrendBits, a platform that tracks the latest developments in artificial intelligence.

Generate 6 hot AI topics that are currently trending or recently announced. Each topic should be structured as a JSON object with the following schema:

{
  "icon": "Brain" | "TrendingUp" | "Zap" | "Cpu" | "Globe" | "Rocket",
  "title": "Concise, catchy title (max 4 words)",
  "description": "Brief description explaining what this trend is about (max 60 characters)",
  "query": "Detailed search query that would help find more information about this topic"
}

Focus on:
- Latest AI model releases
- AI company funding rounds and acquisitions
- New AI applications in different industries
- AI hardware and chip developments
- AI policy and regulation updates
- Breakthrough AI research papers

Return ONLY a JSON array of 6 objects, no markdown formatting or explanations.

Example format:
[
  {
    "icon": "Brain",
    "title": "Meta's AI Vision",
    "description": "Mark Zuckerberg's personal superintelligence strategy",
    "query": "Meta AI personal superintelligence Mark Zuckerberg strategy"
  }
]
"""


def latest_batch() -> list[HotTopic]:
    def _op() -> list[HotTopic]:
        newest = db.session.execute(
            select(HotTopic.batch_id).order_by(HotTopic.created_at.desc()).limit(1)
        ).scalar_one_or_none()
        if newest is None:
            return []
        rows = db.session.execute(
            select(HotTopic)
            .where(HotTopic.batch_id == newest)
            .order_by(HotTopic.position.asc(), HotTopic.created_at.asc())
        ).scalars()
        return list(rows)

    return query_with_retry(_op)


def store_batch(topics: list[dict[str, str]], *, now: datetime | None = None) -> str:
    """Insert ``topics`` as one batch in list order and return its id."""
    batch_id = str(uuid.uuid4())
    created_at = now or utcnow()

    def _op() -> None:
        rows = [
            HotTopic(
                icon=topic["icon"],
                title=topic["title"],
                description=topic["description"],
                search_query=topic["query"],
                batch_id=batch_id,
                position=position,
                created_at=created_at,
                updated_at=created_at,
            )
            for position, topic in enumerate(topics)
        ]
        db.session.add_all(rows)
        db.session.commit()

    query_with_retry(_op)
    return batch_id


def purge_expired(*, now=None) -> int:
    cutoff = (now or utcnow()) - RETENTION

    def _op() -> int:
        result = db.session.execute(delete(HotTopic).where(HotTopic.created_at < cutoff))
        db.session.commit()
        return result.rowcount or 0

    return query_with_retry(_op)


def _generation_error(detail: str | None) -> UpstreamAIError:
    return UpstreamAIError(
        "Sorry, we couldn't generate hot topics at this time. Please try again later.",
        title="AI Generation Error",
        detail=detail,
    )


def generate_batch() -> StoredBatch:
    try:
        text = ai_client().generate(
            HOT_TOPICS_PROMPT,
            system_instruction=HOT_TOPICS_SYSTEM_INSTRUCTION,
            thinking_budget=512,
        )
    except UpstreamAIError as exc:
        raise _generation_error(exc.detail) from exc
    try:
        topics = validate_hot_topics(text)
    except ValueError as exc:
        logger.warning("Rejected hot topics batch: %s", exc)
        raise _generation_error(str(exc)) from exc
    generated_at = utcnow()
    batch = StoredBatch(
        batch_id=store_batch(topics, now=generated_at),
        generated_at=generated_at,
        topics=topics,
    )
    try:
        purged = purge_expired()
    except Exception:
        # The new batch is already committed; stale rows go on the next run.
        logger.exception("Failed to purge expired hot topics after batch %s.", batch.batch_id)
        return batch
    logger.info("Stored hot topics batch %s (%d rows purged).", batch.batch_id, purged)
    return batch
