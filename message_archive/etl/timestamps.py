"""
Message timestamp conversion.

The message table's `date` column counts from the Apple epoch
(2001-01-01 00:00:00 UTC). Older OS versions store whole seconds, newer
ones store nanoseconds, and nothing in the schema says which. The number
of decimal digits is the only reliable discriminant: anything up to ten
digits is seconds, anything longer is nanoseconds.
"""

from typing import Optional

# Seconds between the Unix epoch and the Apple epoch
APPLE_EPOCH_OFFSET = 978307200

NANOSECONDS_PER_SECOND = 1_000_000_000

# Longest raw value still interpreted as seconds
MAX_SECONDS_DIGITS = 10


def apple_to_unix(raw: Optional[int]) -> int:
    """
    Convert a raw message `date` value to Unix seconds.

    Args:
        raw: Value of message.date (seconds or nanoseconds since 2001-01-01).

    Returns:
        Unix timestamp in seconds. Missing values map to the Apple epoch.

    Examples:
        >>> apple_to_unix(727_012_800)
        1705320000
        >>> apple_to_unix(727_012_800_000_000_000)
        1705320000
    """
    if raw is None:
        raw = 0
    raw = int(raw)

    if len(str(abs(raw))) <= MAX_SECONDS_DIGITS:
        return raw + APPLE_EPOCH_OFFSET

    # Integer division truncating toward zero, as SQLite does
    seconds = abs(raw) // NANOSECONDS_PER_SECOND
    if raw < 0:
        seconds = -seconds
    return seconds + APPLE_EPOCH_OFFSET


def unix_to_apple_seconds(unix_seconds: int) -> int:
    """Inverse of apple_to_unix for the seconds encoding."""
    return unix_seconds - APPLE_EPOCH_OFFSET


def unix_to_apple_nanoseconds(unix_seconds: int) -> int:
    """Inverse of apple_to_unix for the nanoseconds encoding."""
    return (unix_seconds - APPLE_EPOCH_OFFSET) * NANOSECONDS_PER_SECOND
