"""Formatting helpers for sizes and timestamps."""

import math
from datetime import datetime, timezone
from typing import Optional

SIZE_UNITS = ["Bytes", "KB", "MB", "GB", "TB"]


def format_bytes(num_bytes: int) -> str:
    """Format a byte count into a human-readable string.

    Args:
        num_bytes: Number of bytes

    Returns:
        Size string such as "0 Bytes", "512 Bytes" or "1.5 MB"
    """
    if num_bytes <= 0:
        return "0 Bytes"

    k = 1024
    i = min(int(math.floor(math.log(num_bytes) / math.log(k))), len(SIZE_UNITS) - 1)
    value = round(num_bytes / math.pow(k, i), 2)
    # Drop trailing zeros: 1.50 -> 1.5, 2.00 -> 2
    value_str = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{value_str} {SIZE_UNITS[i]}"


def utc_now_iso(now: Optional[datetime] = None) -> str:
    """Return an ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
