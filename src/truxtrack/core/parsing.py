"""
Parsing utilities for scraped tracking rows.

Turns the raw date/time and status cell text read from carrier portals
into StatusRecord values.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

import dateparser

from .models import StatusRecord


# =============================================================================
# Timestamp Parsing
# =============================================================================


@dataclass
class ParsedTimestamp:
    """Result of parsing a timestamp string."""

    value: datetime | None
    original: str
    format_detected: str | None = None


def parse_timestamp(
    value: str | datetime | None,
    *,
    prefer_day_first: bool = False,
    relative_base: datetime | None = None,
) -> ParsedTimestamp:
    """Parse a status event timestamp from portal text.

    Handles:
    - ISO 8601 and "YYYY-MM-DD HH:MM" formats
    - US formats (MM/DD/YYYY HH:MM AM/PM)
    - Anything dateparser understands ("Jan 5 2025 10:32", "yesterday 14:00")

    Args:
        value: Raw cell text or datetime
        prefer_day_first: Prefer DD/MM/YYYY over MM/DD/YYYY
        relative_base: Base datetime for relative parsing

    Returns:
        ParsedTimestamp with parsed value (None if unparseable)
    """
    if value is None:
        return ParsedTimestamp(value=None, original="")

    if isinstance(value, datetime):
        return ParsedTimestamp(value=value, original=value.isoformat(), format_detected="datetime")

    original = str(value).strip()
    text = normalize_whitespace(original)

    if not text:
        return ParsedTimestamp(value=None, original=original)

    result = _try_common_patterns(text)
    if result:
        return ParsedTimestamp(value=result[0], original=original, format_detected=result[1])

    # Status events are in the past
    settings = {
        "PREFER_DATES_FROM": "past",
        "RETURN_AS_TIMEZONE_AWARE": False,
        "DATE_ORDER": "DMY" if prefer_day_first else "MDY",
    }
    if relative_base:
        settings["RELATIVE_BASE"] = relative_base

    parsed = dateparser.parse(text, settings=settings)
    if parsed:
        return ParsedTimestamp(value=parsed, original=original, format_detected="dateparser")

    return ParsedTimestamp(value=None, original=original)


def _try_common_patterns(text: str) -> tuple[datetime, str] | None:
    """Try to parse using common timestamp patterns (fast path)."""
    patterns = [
        (r"^(\d{4})-(\d{2})-(\d{2})[T\s](\d{1,2}):(\d{2})(?::(\d{2}))?", "iso_datetime"),
        (r"^(\d{4})/(\d{2})/(\d{2})\s+(\d{1,2}):(\d{2})(?::(\d{2}))?", "ymd_slash_datetime"),
        (r"^(\d{4})-(\d{2})-(\d{2})$", "iso_date"),
        (r"^(\d{1,2})/(\d{1,2})/(\d{4})\s+(\d{1,2}):(\d{2})(?::(\d{2}))?\s*(AM|PM)?$", "us_datetime"),
        (r"^(\d{1,2})/(\d{1,2})/(\d{4})$", "us_date"),
    ]

    for pattern, name in patterns:
        match = re.match(pattern, text, re.IGNORECASE)
        if not match:
            continue

        groups = match.groups()
        try:
            if name.startswith("us"):
                month, day, year = int(groups[0]), int(groups[1]), int(groups[2])
            else:
                year, month, day = int(groups[0]), int(groups[1]), int(groups[2])

            hour = int(groups[3]) if len(groups) > 3 and groups[3] else 0
            minute = int(groups[4]) if len(groups) > 4 and groups[4] else 0
            second = int(groups[5]) if len(groups) > 5 and groups[5] else 0

            if len(groups) > 6 and groups[6]:
                ampm = groups[6].upper()
                if ampm == "PM" and hour < 12:
                    hour += 12
                elif ampm == "AM" and hour == 12:
                    hour = 0

            return datetime(year, month, day, hour, minute, second), name
        except ValueError:
            continue

    return None


# =============================================================================
# Status Parsing
# =============================================================================


# Status text meaning the shipment reached its destination
COMPLETED_PATTERNS = [
    "delivered",
    "livré",
    "livree",
    "livrée",
    "proof of delivery",
    "pod",
    "completed",
    "complété",
]


def is_completed_status(status: str | None) -> bool:
    """Check whether a status label marks the shipment as delivered."""
    if not status:
        return False

    text = normalize_whitespace(status).lower()
    words = set(re.findall(r"\w+", text))

    for pattern in COMPLETED_PATTERNS:
        if " " in pattern:
            if pattern in text:
                return True
        elif pattern in words:
            return True

    return False


# =============================================================================
# Record Construction
# =============================================================================


def build_record(
    when: str,
    status: str,
    *,
    location: str = "",
    company: str = "",
    prefer_day_first: bool = False,
) -> StatusRecord | None:
    """Build a StatusRecord from raw cell text.

    Returns:
        The record, or None when the timestamp or status is unusable
    """
    status_text = normalize_whitespace(status)
    if not status_text:
        return None

    parsed = parse_timestamp(when, prefer_day_first=prefer_day_first)
    if parsed.value is None:
        return None

    return StatusRecord(
        timestamp=parsed.value,
        status=status_text,
        is_completed=is_completed_status(status_text),
        location=normalize_whitespace(location),
        company=normalize_whitespace(company),
    )


def normalize_whitespace(text: str | None) -> str:
    """Normalize whitespace in text."""
    if text is None:
        return ""
    return " ".join(text.split())
