import re

# C0/C1 control characters other than tab and newline.
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b-\x1f\x7f-\x9f]")


def clean_text(value: str) -> str:
    """Display hygiene only. Queries are always parameterised."""
    if not isinstance(value, str):
        return ""
    return _CONTROL_CHARS_RE.sub("", value).strip()
