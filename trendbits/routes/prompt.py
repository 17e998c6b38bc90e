from __future__ import annotations

from flask import current_app
from flask.views import MethodView

from trendbits.responses import success
from trendbits.routes.common import ApiBlueprint, load_json
from trendbits.schemas.trends import PromptSchema
from trendbits.services.ai_response import filter_summary
from trendbits.services.history import save_history_item
from trendbits.services.identity import AccessContext, resolve_guest_or_user
from trendbits.services.summaries import generate_summary
from trendbits.text import clean_text

prompt_blp = ApiBlueprint(
    "prompt",
    __name__,
    url_prefix="/api/prompt",
    description="Generate AI trend summaries (signed-in users or guests under quota)",
)


def _persist_summary(ctx: AccessContext, topic: str, structured: dict) -> str | None:
    try:
        item = save_history_item(
            user_id=ctx.user_id,
            search_term=topic,
            headline=structured["headline"],
            summary=structured["summary"],
            key_points=structured["key_points"],
            call_to_action=structured["call_to_action"],
            article_references=structured.get("references"),
        )
    except Exception:
        # The caller still gets the summary.
        current_app.logger.exception("Failed to save summary to history for user_id=%s", ctx.user_id)
        return None
    return item.id


@prompt_blp.route("/summary")
class SummaryResource(MethodView):
    def post(self):
        # Quota is counted before the body is validated.
        ctx = resolve_guest_or_user()
        data = load_json(PromptSchema())
        topic = clean_text(data["prompt"])

        structured = generate_summary(topic)

        history_id = None
        if ctx.is_authenticated:
            history_id = _persist_summary(ctx, topic, structured)

        return success(
            title="AI Trend Summary",
            message="Successfully generated structured summary",
            data={
                **filter_summary(structured),
                "references": structured.get("references", []),
                "searchTerm": topic,
                "history_id": history_id,
            },
            meta=ctx.guest_meta(),
            no_store=True,
        )
