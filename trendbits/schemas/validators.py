from marshmallow import ValidationError

from trendbits.text import clean_text


def not_blank(value: str) -> None:
    # Control characters are stripped before storage, so they do not count.
    if not isinstance(value, str) or not clean_text(value):
        raise ValidationError("Must not be empty.")


def not_empty_list(value: list) -> None:
    if not value:
        raise ValidationError("At least one item is required.")
