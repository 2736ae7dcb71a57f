from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the naive DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_provider_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parses a date/datetime string from the billing provider ("2024-05-01" or
    "2024-05-01T10:00:00-04:00") into a naive UTC datetime. Returns None for
    empty or unparseable input.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
