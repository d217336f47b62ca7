"""
Minute-of-day helpers.

Session times are stored as minutes since midnight; the API speaks "HH:MM".
"""

from datetime import date
from typing import Union

MINUTES_PER_DAY = 24 * 60

WEEKDAYS = (
    "MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY",
    "FRIDAY", "SATURDAY", "SUNDAY"
)


def time_to_minutes(t: str) -> int:
    """Parse "HH:MM" into minutes since midnight. Raises ValueError on bad input."""
    parts = t.strip().split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValueError(f"Invalid time format (HH:MM expected): {t!r}")
    h, m = int(parts[0]), int(parts[1])
    if h > 23 or m > 59:
        raise ValueError(f"Time out of range: {t!r}")
    return h * 60 + m


def minutes_to_time(mins: int) -> str:
    return f"{mins // 60:02d}:{mins % 60:02d}"


def coerce_minutes(value: Union[int, str]) -> int:
    """Accept either minute-of-day ints or "HH:MM" strings."""
    if isinstance(value, bool):
        raise ValueError("Boolean is not a valid time")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return time_to_minutes(value)
    raise ValueError(f"Unsupported time value: {value!r}")


def overlaps(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open interval overlap: [start_a, end_a) vs [start_b, end_b)."""
    return start_a < end_b and end_a > start_b


def weekday_name(day: date) -> str:
    return WEEKDAYS[day.weekday()]
