"""Date parsing utilities for Salesforce date and datetime fields."""

from __future__ import annotations

import re
from datetime import datetime, timezone

# Shapes fromisoformat rejects: compact offsets, FORMAT() locale output, US dates
_DATETIME_FORMATS = [
    "%Y-%m-%dT%H:%M:%S.%f%z",  # REST: 2024-01-15T10:30:00.000+0000
    "%Y-%m-%dT%H:%M:%S%z",  # 2024-01-15T10:30:00+0000
    "%Y-%m-%dT%H:%M%z",
    "%Y-%m-%d %H:%M:%S%z",
    "%Y-%m-%d %H:%M:%S",  # Bulk CSV exports
    "%m/%d/%Y %I:%M %p",  # FORMAT(): 1/15/2024 10:30 AM
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",  # US format
    "%Y%m%d",  # Compact
]

# Fractional seconds longer than microseconds (e.g. nanoseconds)
_FRACTION_PATTERN = re.compile(r"(?<=:\d\d)\.(\d+)")


def _normalize(text: str) -> str:
    """Rewrite a trailing ``Z`` and pad or truncate fractions to six digits."""
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return _FRACTION_PATTERN.sub(
        lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1
    )


def parse_flexible_datetime(value: str | None) -> datetime | None:
    """Parse a date or datetime string from several common formats.

    ISO 8601 shapes (``T`` or space separator, optional seconds, ``Z`` or
    numeric offsets, any fraction length) are tried first, then a list of
    strptime formats. Values without an offset, including date-only
    values, are taken as UTC. The result is always timezone-aware.

    Args:
        value: Date or datetime string to parse, or None

    Returns:
        Parsed aware datetime, or None if the input is empty or no format
        matches

    Examples:
        >>> parse_flexible_datetime("2024-01-15T10:30:00.000+0000")
        datetime.datetime(2024, 1, 15, 10, 30, tzinfo=datetime.timezone.utc)
        >>> parse_flexible_datetime("2024-01-15T10:30Z")
        datetime.datetime(2024, 1, 15, 10, 30, tzinfo=datetime.timezone.utc)
        >>> parse_flexible_datetime("1/15/2024 10:30 AM")
        datetime.datetime(2024, 1, 15, 10, 30, tzinfo=datetime.timezone.utc)
        >>> parse_flexible_datetime("invalid")
        None
    """
    if not value:
        return None

    text = _normalize(value.strip())

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        parsed = None

    if parsed is None:
        for fmt in _DATETIME_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
            except ValueError:
                continue
            break

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
