from __future__ import annotations

from flask import Response, jsonify, make_response


def envelope(
    *,
    status: str,
    title: str,
    message: str,
    data: object = None,
    meta: object = None,
) -> dict[str, object]:
    payload: dict[str, object] = {
        "status": status,
        "title": title,
        "message": message,
        "data": data,
    }
    if meta is not None:
        payload["meta"] = meta
    return payload


def success(
    *,
    title: str,
    message: str,
    data: object = None,
    meta: object = None,
    status_code: int = 200,
    no_store: bool = False,
) -> Response:
    resp = make_response(
        jsonify(envelope(status="success", title=title, message=message, data=data, meta=meta)),
        status_code,
    )
    if no_store:
        resp.headers["Cache-Control"] = "no-store"
    return resp


def error(
    *,
    title: str,
    message: str,
    status_code: int,
    data: object = None,
) -> Response:
    return make_response(
        jsonify(envelope(status="error", title=title, message=message, data=data)),
        status_code,
    )
