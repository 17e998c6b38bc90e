"""Turn free-form model output into a validated, projected structure.

The model is asked for bare JSON but regularly wraps it in a markdown fence or
adds fields of its own. Everything here is pure (no Flask, no database) so the
same helpers serve the summary endpoint, history saves and hot-topic batches.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from urllib.parse import urlsplit

from marshmallow import ValidationError

from trendbits.schemas.ai import HotTopicSchema, ReferenceSchema, SummarySchema

HOT_TOPIC_BATCH_SIZE = 6

ALLOWED_REFERENCE_DOMAINS = frozenset(
    {
        "reuters.com",
        "bbc.com",
        "bbc.co.uk",
        "apnews.com",
        "nytimes.com",
        "theguardian.com",
        "washingtonpost.com",
        "wsj.com",
        "bloomberg.com",
        "cnn.com",
        "npr.org",
        "ft.com",
        "economist.com",
        "cnbc.com",
        "aljazeera.com",
        "techcrunch.com",
        "theverge.com",
        "wired.com",
        "arstechnica.com",
        "forbes.com",
        "axios.com",
    }
)

_FENCE_OPEN_RE = re.compile(r"^```[a-zA-Z]*\s*")
_FENCE_CLOSE_RE = re.compile(r"\s*```$")


@dataclass
class SummaryValidation:
    success: bool
    data: dict | None = None
    errors: dict = field(default_factory=dict)


def unwrap_code_fence(text: str) -> str:
    cleaned = (text or "").strip()
    cleaned = _FENCE_OPEN_RE.sub("", cleaned, count=1)
    cleaned = _FENCE_CLOSE_RE.sub("", cleaned, count=1)
    return cleaned.strip()


def parse_json_block(text: str | None) -> object | None:
    if not isinstance(text, str) or not text.strip():
        return None
    try:
        return json.loads(unwrap_code_fence(text))
    except ValueError:
        return None


def validate_summary(raw: object) -> SummaryValidation:
    """Validate a model summary given as text or an already-parsed object.

    On success ``data`` holds exactly ``headline``, ``summary``, ``key_points``,
    ``call_to_action`` and the allow-listed ``references``. Bad references are
    dropped; they never fail the summary.
    """
    parsed = parse_json_block(raw) if isinstance(raw, str) else raw
    if not isinstance(parsed, dict):
        return SummaryValidation(success=False, errors={"_schema": ["Invalid JSON format."]})
    try:
        data = SummarySchema().load(parsed)
    except ValidationError as exc:
        return SummaryValidation(success=False, errors=exc.normalized_messages())
    data["key_points"] = [point.strip() for point in data["key_points"]]
    data["references"] = filter_references(parsed.get("references"))
    return SummaryValidation(success=True, data=data)


def filter_summary(data: dict) -> dict:
    return {
        "headline": data.get("headline") or "",
        "summary": data.get("summary") or "",
        "key_points": list(data.get("key_points") or []),
        "call_to_action": data.get("call_to_action") or "",
    }


def host_is_allowed(host: str) -> bool:
    host = host.lower().rstrip(".")
    if host.startswith("www."):
        host = host[4:]
    return any(host == domain or host.endswith(f".{domain}") for domain in ALLOWED_REFERENCE_DOMAINS)


def _reference_host(url: str) -> str | None:
    try:
        parts = urlsplit(url.strip())
        host = parts.hostname
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not host:
        return None
    return host


def filter_references(candidates: object) -> list[dict[str, str]]:
    if not isinstance(candidates, list):
        return []
    kept: list[dict[str, str]] = []
    schema = ReferenceSchema()
    for candidate in candidates:
        if not isinstance(candidate, dict):
            continue
        try:
            ref = schema.load(candidate)
        except ValidationError:
            continue
        host = _reference_host(ref["url"])
        if host is None or not host_is_allowed(host):
            continue
        ref["url"] = ref["url"].strip()
        kept.append(ref)
    return kept


def validate_hot_topics(raw: object) -> list[dict[str, str]]:
    """Return exactly six validated topics or raise ``ValueError``."""
    parsed = parse_json_block(raw) if isinstance(raw, str) else raw
    if not isinstance(parsed, list):
        raise ValueError("Hot topics response is not a JSON array.")
    if len(parsed) != HOT_TOPIC_BATCH_SIZE:
        raise ValueError(
            f"Expected {HOT_TOPIC_BATCH_SIZE} hot topics, got {len(parsed)}."
        )
    try:
        topics = HotTopicSchema(many=True).load(parsed)
    except ValidationError as exc:
        raise ValueError(f"Invalid hot topics: {exc.normalized_messages()}") from exc
    return [{key: value.strip() for key, value in topic.items()} for topic in topics]
