"""
Helper utilities for the now-playing companion
Time conversion, formatting and small text helpers shared across packages
"""

import time
from datetime import datetime
from typing import Optional, Union


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds"""
    return int(time.time() * 1000)


def format_duration(seconds: Union[int, float]) -> str:
    """
    Format duration in seconds to human-readable string

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted duration string
    """
    if seconds < 0:
        return "0:00"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    else:
        return f"{minutes}:{secs:02d}"


def format_timestamp_ms(timestamp_ms: int) -> str:
    """
    Format an epoch-millisecond timestamp for display

    Args:
        timestamp_ms: Epoch milliseconds; 0 means "never"

    Returns:
        Formatted timestamp string
    """
    if not timestamp_ms:
        return "never"
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime('%Y-%m-%d %H:%M:%S')


def parse_iso_timestamp_ms(value: str) -> Optional[int]:
    """
    Parse an ISO-8601 timestamp (as used by ``played_at``) to epoch milliseconds

    Args:
        value: Timestamp string, e.g. ``2024-05-01T10:15:30.123Z``

    Returns:
        Epoch milliseconds, or None if the value cannot be parsed
    """
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None
    return int(dt.timestamp() * 1000)


def truncate_string(text: str, max_length: int, suffix: str = "...") -> str:
    """
    Truncate string to maximum length with suffix

    Args:
        text: Original text
        max_length: Maximum length including suffix
        suffix: Suffix to add when truncating

    Returns:
        Truncated string
    """
    if len(text) <= max_length:
        return text

    truncate_length = max_length - len(suffix)
    if truncate_length <= 0:
        return suffix[:max_length]

    return text[:truncate_length] + suffix
