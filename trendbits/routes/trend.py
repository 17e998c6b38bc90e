from __future__ import annotations

import hmac

from flask import current_app, request
from flask.views import MethodView

from trendbits.errors import AuthenticationError, NotFoundError
from trendbits.responses import success
from trendbits.routes.common import ApiBlueprint
from trendbits.services.hot_topics import generate_batch, latest_batch

trend_blp = ApiBlueprint(
    "trend",
    __name__,
    url_prefix="/api/trend",
    description="Hot AI topics, regenerated on a schedule",
)


def _require_cron_secret() -> None:
    expected = current_app.config.get("TREND_GENERATE_SECRET")
    if not expected:
        return
    provided = request.headers.get("X-Cron-Secret", "")
    if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        raise AuthenticationError("Invalid or missing cron secret.", title="Unauthorized")


@trend_blp.route("/hot-topics")
class HotTopicsResource(MethodView):
    def get(self):
        rows = latest_batch()
        if not rows:
            raise NotFoundError(
                "No hot topics available. Please try again later.", title="No Topics Found"
            )
        return success(
            title="Hot AI Topics Retrieved",
            message="Successfully retrieved latest AI trends",
            data={
                "topics": [row.to_dict() for row in rows],
                "generatedAt": rows[0].created_at.isoformat(),
                "batchId": rows[0].batch_id,
            },
        )


@trend_blp.route("/generate")
class GenerateHotTopicsResource(MethodView):
    def post(self):
        _require_cron_secret()
        batch = generate_batch()
        current_app.logger.info("Generated hot topics batch %s via API.", batch.batch_id)
        return success(
            title="Hot AI Topics Generated",
            message="Successfully generated and stored latest AI trends",
            data={
                "topics": batch.topics,
                "generatedAt": batch.generated_at.isoformat(),
                "batchId": batch.batch_id,
                "stored": True,
            },
        )
