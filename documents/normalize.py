"""Slug, date, time and email rules shared by the event documents."""

from __future__ import annotations

import re
from datetime import datetime, timezone

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_TIME_RE = re.compile(r"^(?P<hour>\d{1,2}):(?P<minute>\d{2})$")

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d %Y",
    "%B %d %Y",
    "%d %b %Y",
    "%d %B %Y",
    "%a, %b %d, %Y",
    "%A, %B %d, %Y",
)


def create_slug(title: str) -> str:
    """Turn *title* into a URL-safe slug, e.g. 'React Summit 2025!' -> 'react-summit-2025'."""
    slug = title.lower().strip()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def _parse_date(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def normalize_date(value: str) -> str:
    """Return the UTC calendar date of *value* as ``YYYY-MM-DD``."""
    parsed = _parse_date(value.strip())
    if parsed is None:
        raise ValueError("Invalid event date provided")
    # Naive values are taken as UTC
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date().isoformat()


def normalize_time(value: str) -> str:
    """Return *value* as a zero-padded 24-hour ``HH:mm`` string."""
    match = _TIME_RE.match(value.strip())
    if not match:
        raise ValueError("Invalid event time. Expected format HH:mm (24-hour)")

    hour = int(match.group("hour"))
    minute = int(match.group("minute"))
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError("Invalid event time range")

    return f"{hour:02d}:{minute:02d}"


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value))
