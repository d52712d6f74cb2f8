"""
Helpers for clipping and scrubbing serialized markup
"""

import re
import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)

ELLIPSIS = "…"
MARKUP_CLIP_LENGTH = 900

VALUE_ATTRIBUTE_PATTERN = re.compile(r'value="[^"]*"', re.IGNORECASE)
REDACTED_VALUE_ATTRIBUTE = 'value="REDACTED"'

DISABLED_CLASS_PATTERN = re.compile(r'\bdisabled\b', re.IGNORECASE)
DISABLED_TOKEN_PATTERN = re.compile(r'^disabled$', re.IGNORECASE)


def clip(text: Optional[str], limit: int = MARKUP_CLIP_LENGTH) -> str:
    """
    Truncate text to a maximum length, marking the cut with an ellipsis.

    Args:
        text: Text to clip (None is treated as empty)
        limit: Maximum number of characters kept

    Returns:
        Clipped text
    """
    if not text:
        return ""
    if len(text) > limit:
        return text[:limit] + ELLIPSIS
    return text


def scrub_value_attributes(markup: Any) -> Any:
    """
    Replace every value="..." attribute in markup with a fixed placeholder.

    Non-string input is returned unchanged.
    """
    if not isinstance(markup, str):
        return markup
    return VALUE_ATTRIBUTE_PATTERN.sub(REDACTED_VALUE_ATTRIBUTE, markup)


def has_disabled_class(class_name: Optional[str]) -> bool:
    """Check whether a class attribute mentions 'disabled' as a whole word."""
    return bool(DISABLED_CLASS_PATTERN.search(class_name or ""))


def strip_disabled_class(class_name: Optional[str]) -> str:
    """
    Remove standalone 'disabled' tokens from a class attribute.

    Args:
        class_name: Space-separated class list

    Returns:
        Class list without 'disabled' tokens, other tokens in their original order
    """
    tokens = (class_name or "").split()
    return " ".join(token for token in tokens if not DISABLED_TOKEN_PATTERN.match(token))


def pad_right(value: Any, width: int) -> str:
    """Pad a value to a fixed column width, clipping with an ellipsis when too long."""
    text = "" if value is None else str(value)
    if len(text) >= width:
        return text[:width - 1] + ELLIPSIS
    return text + " " * (width - len(text))
