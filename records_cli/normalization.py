"""
Canonical keys for the free-text intake, cohort, year and module code fields.

Students and courses are captured by different people through different
forms, so "Sept 2024", "September" and "9" all have to compare equal. Every
function here is pure and returns an empty string for missing input.
"""

import re
from typing import Any

_MONTH_PREFIXES = (
    ("jan", "1"),
    ("feb", "2"),
    ("mar", "3"),
    ("apr", "4"),
    ("may", "5"),
    ("jun", "6"),
    ("jul", "7"),
    ("aug", "8"),
    ("sep", "9"),
    ("oct", "10"),
    ("nov", "11"),
    ("dec", "12"),
)

_NON_DIGITS = re.compile(r"[^0-9]")
_YEAR_PREFIX = re.compile(r"^\s*year\s*", re.IGNORECASE)


def _as_text(raw: Any) -> str:
    if raw is None:
        return ""
    return str(raw).strip()


def normalize_intake_token(raw: Any) -> str:
    """
    Map an intake description to a month number string ("1" to "12").

    Month names are matched by their three letter prefix anywhere in the
    text, so "Sept 2024" becomes "9". Without a month name the digits are
    kept; a bare month number loses its leading zero ("09" -> "9").
    """
    text = _as_text(raw).lower()
    if not text:
        return ""

    for prefix, month in _MONTH_PREFIXES:
        if prefix in text:
            return month

    digits = _NON_DIGITS.sub("", text)
    if digits and 1 <= int(digits) <= 12:
        return str(int(digits))
    return digits


def normalize_year_token(raw: Any) -> str:
    """Strip a leading "Year" label: "Year 2" and "2" compare equal."""
    text = _as_text(raw)
    return _YEAR_PREFIX.sub("", text).strip().lower()


def normalize_cohort_token(raw: Any) -> str:
    return _as_text(raw).lower()


def normalize_module_code(raw: Any) -> str:
    return _as_text(raw).lower()
