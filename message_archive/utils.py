"""
Utility functions and classes for Message Archive.
"""

from datetime import datetime, timezone


class Colors:
    """ANSI color codes for terminal output."""

    HEADER = "\033[95m"
    OKBLUE = "\033[94m"
    OKCYAN = "\033[96m"
    OKGREEN = "\033[92m"
    WARNING = "\033[93m"
    FAIL = "\033[91m"
    ENDC = "\033[0m"
    BOLD = "\033[1m"
    UNDERLINE = "\033[4m"


def format_timestamp(timestamp: int) -> str:
    """
    Format a Unix timestamp (seconds) as a UTC date string.

    Args:
        timestamp: Seconds since 1970-01-01 UTC, as stored in the index.

    Returns:
        Formatted date string, e.g. "2024-01-15 10:00:00".
    """
    dt = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def format_item_count(count: int) -> str:
    """
    Format an item count with appropriate units.

    Args:
        count: Number of messages and links.

    Returns:
        Formatted string (e.g., "999", "1.2K" or "3.4M").
    """
    if count < 1000:
        return str(count)
    elif count < 1_000_000:
        return f"{count / 1000:.1f}K"
    else:
        return f"{count / 1_000_000:.1f}M"


def truncate(text: str, width: int = 60) -> str:
    """Shorten text to width characters for one-line terminal output."""
    text = " ".join(text.split())
    if len(text) <= width:
        return text
    return text[: max(width - 3, 0)] + "..."
