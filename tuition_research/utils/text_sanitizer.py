"""
Sanitization helpers for text pulled out of grounded search responses.

Three composable pure functions (control-character stripping, trailing
qualifier stripping, truncation with a marker) plus a composition used before
anything is stored. Every function is idempotent: running it on its own
output changes nothing.

Also hosts the small currency / program-length parsers shared by the fact
extractor and the verifier.
"""

import re
from typing import Any, Optional

from ..constants import DEFAULT_CONTENT_TRUNCATION_CHARS

BINARY_MARKER = "[binary content removed]"
PDF_MARKER = "[PDF content removed]"

# NUL and C0 controls except \t \n \r, plus DEL
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_BINARY_STREAM = re.compile(r"\bstream\b[\s\S]*?\bendstream\b", re.IGNORECASE)
_PDF_BLOCK = re.compile(r"%PDF[\s\S]*?%%EOF", re.IGNORECASE)

_TRAILING_QUALIFIER = re.compile(
    r"[\s,;:-]*\(?\s*\b(?:total(?:\s+cost)?|per\s+program|for\s+the\s+(?:full\s+)?program)\s*\)?\s*$",
    re.IGNORECASE,
)

_TRUNCATION_MARKER = re.compile(r"\.\.\. \[truncated, \d+ sources?\]$")


def strip_control_characters(text: Optional[str]) -> Optional[str]:
    """
    Remove control characters and embedded binary blobs, then tidy whitespace.

    PDF bodies and ``stream ... endstream`` blocks that leak into grounding
    excerpts are replaced with short markers. Runs of spaces collapse to one
    space, and more than one blank line collapses to a single blank line, so
    paragraph breaks survive.
    """
    if not text:
        return text

    cleaned = text.replace("\x00", "")
    cleaned = _CONTROL_CHARS.sub("", cleaned)
    cleaned = _BINARY_STREAM.sub(BINARY_MARKER, cleaned)
    cleaned = _PDF_BLOCK.sub(PDF_MARKER, cleaned)

    cleaned = cleaned.replace("\r\n", "\n").replace("\r", "\n")
    cleaned = re.sub(r"[ \t\f\v]+", " ", cleaned)
    cleaned = re.sub(r" *\n *", "\n", cleaned)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()


def strip_trailing_qualifier(text: Optional[str]) -> Optional[str]:
    """
    Remove trailing qualifier words from a currency string.

    Examples:
        >>> strip_trailing_qualifier("$76,000 total")
        '$76,000'
        >>> strip_trailing_qualifier("$160,083 (total) per program")
        '$160,083'
    """
    if not text:
        return text

    current = text.strip()
    while True:
        stripped = _TRAILING_QUALIFIER.sub("", current).strip()
        # Never strip a value down to nothing
        if not stripped or stripped == current:
            return current
        current = stripped


def truncate_with_marker(text: Optional[str], limit: int = DEFAULT_CONTENT_TRUNCATION_CHARS, source_count: int = 1) -> Optional[str]:
    """
    Cut text to ``limit`` characters and append ``... [truncated, N sources]``.

    Text that already carries the marker is returned unchanged, so content is
    never truncated twice.
    """
    if not text or len(text) <= limit:
        return text
    if _TRUNCATION_MARKER.search(text):
        return text

    noun = "source" if source_count == 1 else "sources"
    return f"{text[:limit].rstrip()}... [truncated, {source_count} {noun}]"


def sanitize_for_storage(
    text: Optional[str],
    limit: int = DEFAULT_CONTENT_TRUNCATION_CHARS,
    source_count: int = 1,
) -> Optional[str]:
    """Control-character cleanup followed by truncation."""
    return truncate_with_marker(strip_control_characters(text), limit, source_count)


def format_currency(value: Any) -> Optional[str]:
    """
    Prefix numeric currency strings with ``$``.

    Returns None for empty values; non-numeric text is returned unchanged.
    """
    if value is None:
        return None
    str_value = str(value).strip()
    if not str_value or str_value.lower() in ("null", "none", "n/a"):
        return None
    if str_value.startswith("$"):
        return str_value
    if re.fullmatch(r"[\d\s,.-]+", str_value) and re.search(r"\d", str_value):
        return f"${str_value}"
    return str_value


def parse_currency(value: Any) -> Optional[float]:
    """
    Parse "$50,000", "50000" or 50000 into a float.

    For text with several numbers ("$1,200 - $1,500") the first one wins.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)

    match = re.search(r"-?\d[\d,]*(?:\.\d+)?", str(value))
    if not match:
        return None
    try:
        return float(match.group(0).replace(",", ""))
    except ValueError:
        return None


def parse_program_length_months(value: Any) -> Optional[int]:
    """
    Convert a program length to months.

    Examples:
        >>> parse_program_length_months("2 years")
        24
        >>> parse_program_length_months("1.5 years")
        18
        >>> parse_program_length_months("21 months")
        21
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(round(value))

    text = str(value).lower()
    months_match = re.search(r"([\d.]+)\s*months?", text)
    if months_match:
        try:
            return int(round(float(months_match.group(1))))
        except ValueError:
            return None
    years_match = re.search(r"([\d.]+)\s*(?:years?|yrs?)", text)
    if years_match:
        try:
            return int(round(float(years_match.group(1)) * 12))
        except ValueError:
            return None
    if re.fullmatch(r"\s*\d+\s*", text):
        return int(text)
    return None
