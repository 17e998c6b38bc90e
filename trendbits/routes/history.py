from __future__ import annotations

from flask import g, request
from flask.views import MethodView

from trendbits.errors import NotFoundError
from trendbits.responses import success
from trendbits.routes.common import ApiBlueprint
from trendbits.schemas.trends import HistoryQueryArgsSchema, SaveTrendSchema
from trendbits.services.history import (
    delete_history_item,
    get_history_item,
    list_history,
    pagination_meta,
    save_history_item,
)
from trendbits.services.identity import require_user

history_blp = ApiBlueprint(
    "history",
    __name__,
    url_prefix="/api/prompt/history",
    description="Saved trend summaries for the signed-in user",
)


@history_blp.before_request
def _require_signed_in_user() -> None:
    # Runs ahead of argument parsing so unauthenticated calls are always 401s.
    if request.method == "OPTIONS":
        return
    user, _ctx = require_user()
    g.current_user = user


def _trend_not_found() -> NotFoundError:
    return NotFoundError(
        "The requested trend was not found in your history.", title="Trend Not Found"
    )


@history_blp.route("")
class HistoryCollection(MethodView):
    @history_blp.arguments(SaveTrendSchema)
    def post(self, payload):
        item = save_history_item(user_id=g.current_user.id, **payload)
        return success(
            title="Trend Saved",
            message="Successfully saved trend to your history",
            data={"id": item.id, "saved_at": item.created_at.isoformat()},
            status_code=201,
        )

    @history_blp.arguments(HistoryQueryArgsSchema, location="query")
    def get(self, args):
        user_id = g.current_user.id
        item_id = (args.get("id") or "").strip()
        if item_id:
            item = get_history_item(user_id=user_id, item_id=item_id)
            if item is None:
                raise _trend_not_found()
            return success(
                title="Trend Retrieved",
                message="Successfully retrieved trend details",
                data=item.to_dict(),
            )

        page, limit = args["page"], args["limit"]
        query = (args.get("q") or "").strip()
        items, total = list_history(user_id=user_id, page=page, limit=limit, search=query or None)
        trends = [item.to_dict() for item in items]
        pagination = pagination_meta(page=page, limit=limit, total=total)

        if query:
            return success(
                title="Search Results",
                message=f"Found {len(trends)} trends matching your search",
                data={
                    "trends": trends,
                    "search": {
                        "query": query,
                        "results_count": len(trends),
                        "total_matches": total,
                    },
                    "pagination": pagination,
                },
            )
        return success(
            title="Trend History Retrieved",
            message="Successfully retrieved your trend history",
            data={"trends": trends, "pagination": pagination},
        )


@history_blp.route("/<string:item_id>")
class HistoryItem(MethodView):
    def delete(self, item_id: str):
        if not delete_history_item(user_id=g.current_user.id, item_id=item_id):
            raise _trend_not_found()
        return success(
            title="Trend Deleted",
            message="Successfully deleted trend from your history",
        )
