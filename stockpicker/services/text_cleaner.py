"""Input text cleanup for user-supplied names and tickers.

Names end up rendered in the frontend, so markup is removed before storage.
"""

from __future__ import annotations

import re

from stockpicker.core.exceptions import ValidationError


# Anything that looks like an HTML/script tag
HTML_TAG_PATTERN = re.compile(r"<[^>]*>")


def strip_html_tags(text: str) -> str:
    return HTML_TAG_PATTERN.sub("", text)


def clean_text(value: object, field_name: str, max_length: int) -> str:
    """
    Trim, check length and strip tags.

    Length is checked on the trimmed input before tags are removed, so a
    tag-stuffed value cannot sneak past the limit.

    Raises:
        ValidationError: Not a string, empty, or longer than max_length
    """
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string")

    trimmed = value.strip()
    if not trimmed:
        raise ValidationError(f"{field_name} cannot be empty")
    if len(trimmed) > max_length:
        raise ValidationError(
            f"{field_name} must be {max_length} characters or less",
            details={"field": field_name, "max_length": max_length},
        )

    cleaned = strip_html_tags(trimmed).strip()
    if not cleaned:
        raise ValidationError(f"{field_name} cannot be empty")
    return cleaned
