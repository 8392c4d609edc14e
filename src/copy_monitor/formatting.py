"""Human-readable sizes, speeds and durations for logs and CLI output."""

from __future__ import annotations

from typing import Optional

SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")
BYTES_PER_GB = 1024 ** 3


def format_size(num_bytes: Optional[float]) -> str:
    if not num_bytes or num_bytes <= 0:
        return "0 B"
    value = float(num_bytes)
    unit = 0
    while value >= 1024 and unit < len(SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{value:.2f} {SIZE_UNITS[unit]}"


def format_speed(bytes_per_second: Optional[float]) -> str:
    return f"{format_size(bytes_per_second)}/s"


def format_duration(seconds: Optional[float]) -> str:
    """Format as m:ss or h:mm:ss; unknown or non-positive values give --:--."""
    if seconds is None or seconds <= 0:
        return "--:--"
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def bytes_to_gb(num_bytes: Optional[float]) -> float:
    return (num_bytes or 0) / BYTES_PER_GB
