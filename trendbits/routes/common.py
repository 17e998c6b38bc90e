from __future__ import annotations

import random
import time

from flask import current_app, request
from flask_smorest import Blueprint
from marshmallow import Schema, ValidationError
from webargs.flaskparser import FlaskParser

from trendbits.errors import RequestValidationError


class _ArgumentsParser(FlaskParser):
    DEFAULT_VALIDATION_STATUS = 400


class ApiBlueprint(Blueprint):
    """flask-smorest blueprint whose argument errors are 400s, not 422s."""

    ARGUMENTS_PARSER = _ArgumentsParser()


def load_json(schema: Schema) -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise RequestValidationError("Expected JSON object body.")
    try:
        return schema.load(data)
    except ValidationError as exc:
        raise RequestValidationError(
            "Please check the highlighted fields.",
            data={"errors": exc.normalized_messages()},
        ) from exc


def load_args(schema: Schema) -> dict:
    try:
        return schema.load(request.args)
    except ValidationError as exc:
        raise RequestValidationError(
            "Please check the query parameters.",
            data={"errors": exc.normalized_messages()},
        ) from exc


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_email_like(value: str) -> bool:
    if not value or value.strip() != value:
        return False
    if " " in value:
        return False
    if value.count("@") != 1:
        return False
    local, domain = value.split("@", 1)
    if not local or not domain:
        return False
    if "." not in domain:
        return False
    if domain.startswith(".") or domain.endswith("."):
        return False
    return True


def auth_enumeration_delay() -> None:
    if current_app.testing:
        return
    time.sleep(random.uniform(0.15, 0.35))
