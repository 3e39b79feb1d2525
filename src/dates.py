"""Parsing of task date fields."""
from datetime import datetime, timezone
from typing import Any, Optional


def parse_date(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 date string into an aware datetime.
    
    Naive values are taken as UTC; a trailing ``Z`` is accepted.
    
    Returns:
        Parsed datetime, or None for missing or malformed values
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
