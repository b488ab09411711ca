"""
Timestamp utilities for consistent time handling across the system.
"""

import time
from datetime import datetime
from typing import Optional

from .errors import ParseError


def to_datetime(timestamp: Optional[int] = None) -> datetime:
    """Convert timestamp to datetime object.

    Args:
        timestamp: Unix timestamp in seconds (optional, uses current time if None)

    Returns:
        datetime object
    """
    if timestamp is None:
        timestamp = time.time()
    return datetime.fromtimestamp(timestamp)


def to_iso_str(value: Optional[datetime] = None) -> str:
    """Render a datetime as ISO-8601 text, current time if None."""
    return (value or datetime.now()).isoformat()


def parse_loose(value) -> datetime:
    """Parse a stored createdAt value.

    Accepts ISO-8601 text (with or without a trailing 'Z') and unix seconds.

    Raises:
        ParseError: If the value cannot be read as a timestamp
    """
    if isinstance(value, datetime):
        return value
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ParseError('Empty timestamp')

    try:
        if isinstance(value, (int, float)) or str(value).strip().isdigit():
            return to_datetime(int(value))
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        return datetime.fromisoformat(text)
    except (ValueError, OverflowError, OSError) as e:
        raise ParseError(f'Invalid timestamp {value!r}: {e}')
