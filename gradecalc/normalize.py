"""Normalization of free-text numeric input typed by the user."""

import math
import re
from typing import Any

_PARTIAL_NUMBER = re.compile(r"\d*\.?\d*")


def normalize_number_input(raw: Any) -> str | None:
    """
    Validate and normalize numeric text while it is being typed.

    A comma is accepted as decimal separator and rewritten to a dot. Partial
    states such as "3." or "" are valid so live typing is never blocked.

    Returns:
        The normalized text, "" for empty input, or None when the text can
        never become a number (letters, signs, a second separator).
    """
    if raw is None:
        return ""

    text = str(raw).replace(",", ".", 1)
    if text == "":
        return ""
    if not _PARTIAL_NUMBER.fullmatch(text):
        return None
    return text


def parse_number(value: Any) -> float | None:
    """Parse a stored score or setting to a float, or None if it is not a finite number."""
    if isinstance(value, bool) or value is None:
        return None

    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace(",", ".", 1)
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None

    if not math.isfinite(number):
        return None
    return number
