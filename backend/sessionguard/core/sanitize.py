"""Input sanitization helpers for request payloads."""

from __future__ import annotations

import unicodedata


def _strip_control_chars(value: str) -> str:
    return "".join(ch for ch in value if unicodedata.category(ch) != "Cc")


def clean_token(value: str | None) -> str:
    """Normalize an opaque credential copied from a header, cookie or body.

    Tokens never legitimately contain whitespace or control characters, so
    both are dropped instead of collapsed.
    """
    if value is None:
        return ""
    if not isinstance(value, str):
        value = str(value)
    value = _strip_control_chars(value)
    return "".join(value.split())
