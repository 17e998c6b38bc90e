import json
import os
import tempfile

from sqlalchemy import text

from trendbits.app import create_test_app
from trendbits.extensions import db
from trendbits.services import gemini as gemini_service

_TABLES_IN_DELETE_ORDER = ("trend_history", "hot_topics", "guest_requests", "users")


class FakeAIClient:
    """Stands in for GeminiClient; returns queued responses in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def queue(self, *responses) -> None:
        self.responses.extend(responses)

    def generate(self, contents, *, system_instruction=None, thinking_budget=0):
        self.calls.append(
            {
                "contents": contents,
                "system_instruction": system_instruction,
                "thinking_budget": thinking_budget,
            }
        )
        if not self.responses:
            raise AssertionError("FakeAIClient has no queued response.")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_test_app(config_overrides=None):
    handle = tempfile.NamedTemporaryFile(prefix="trendbits_", suffix=".sqlite", delete=False)
    handle.close()
    overrides = {"SQLALCHEMY_DATABASE_URI": f"sqlite:///{handle.name}"}
    if config_overrides:
        overrides.update(config_overrides)
    app = create_test_app(config_overrides=overrides)
    fake_ai = FakeAIClient()
    app.extensions[gemini_service.EXTENSION_KEY] = fake_ai
    with app.app_context():
        db.create_all()
    return app, fake_ai, handle.name


def reset_tables(app) -> None:
    with app.app_context():
        with db.engine.begin() as conn:
            for table in _TABLES_IN_DELETE_ORDER:
                conn.execute(text(f"DELETE FROM {table}"))


def drop_database(app, path: str) -> None:
    with app.app_context():
        db.session.remove()
        db.engine.dispose()
    try:
        os.unlink(path)
    except OSError:
        pass


def summary_json(**overrides) -> str:
    payload = {
        "headline": "Open-weight models close the gap",
        "summary": "Open models are catching up with frontier labs. Here is why it matters.",
        "key_points": ["Benchmarks tightened", "Licensing loosened"],
        "call_to_action": "Stay tuned for next week's roundup.",
        "references": [
            {
                "title": "Open models surge",
                "url": "https://www.reuters.com/technology/open-models",
                "source": "Reuters",
                "date": "2025-01-10",
            },
            {
                "title": "Totally real news",
                "url": "https://evil.example.com/story",
                "source": "Evil",
                "date": "2025-01-11",
            },
        ],
    }
    for key, value in overrides.items():
        if value is None:
            payload.pop(key, None)
        else:
            payload[key] = value
    return json.dumps(payload)


def hot_topics_json(count: int = 6, **overrides) -> str:
    icons = ["Brain", "TrendingUp", "Zap", "Cpu", "Globe", "Rocket"]
    topics = [
        {
            "icon": icons[i % len(icons)],
            "title": f"Topic {i}",
            "description": f"Description {i}",
            "query": f"search query {i}",
        }
        for i in range(count)
    ]
    for topic in topics:
        topic.update(overrides)
    return json.dumps(topics)
