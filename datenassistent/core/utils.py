"""
Common Utilities

Helper functions used throughout the application.
"""

import re
import uuid
from datetime import UTC, date, datetime, time
from decimal import Decimal
from typing import Any

SECRET_KEY_PATTERN = re.compile(r"sk-[A-Za-z0-9\-_.]{8,}")

# Ordered: cards before phones so long digit runs are labelled as cards
PII_PATTERNS: dict[str, re.Pattern[str]] = {
    "email": re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE),
    "credit_card": re.compile(r"\b(?:\d[ -]?){12,15}\d\b"),
    "ssn_like": re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
    "phone": re.compile(
        r"(?:\+\d{1,3}[-.\s]?)?(?:\(?\d{2,5}\)?[-.\s]?)?\d{3,4}[-.\s]?\d{4}\b"
    ),
}


def generate_short_id(prefix: str = "") -> str:
    """Generate a short, URL-safe ID.

    Args:
        prefix: Optional prefix for the ID

    Returns:
        Short ID string (e.g., "req-abc123")
    """
    short_uuid = uuid.uuid4().hex[:12]
    if prefix:
        return f"{prefix}-{short_uuid}"
    return short_uuid


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def truncate_string(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """Truncate a string to a maximum length.

    Args:
        text: Text to truncate
        max_length: Maximum length before the suffix is appended
        suffix: Suffix to append if truncated

    Returns:
        Truncated string
    """
    if len(text) <= max_length:
        return text
    return text[:max_length] + suffix


def redact_for_logging(message: str) -> str:
    """Replace API keys and PII-looking substrings with labelled markers.

    Args:
        message: Free text (typically a backend error message)

    Returns:
        Text safe to write to production logs
    """
    redacted = SECRET_KEY_PATTERN.sub("[redacted-key]", message)
    for label, pattern in PII_PATTERNS.items():
        redacted = pattern.sub(f"[redacted-{label}]", redacted)
    return redacted


def to_jsonable(value: Any) -> Any:
    """Convert database values into JSON-serializable Python values.

    UUIDs become strings, dates/times ISO strings, Decimals floats
    (ints when integral). Mappings and sequences are converted recursively.
    """
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, bytes):
        return value.hex()
    return str(value)
