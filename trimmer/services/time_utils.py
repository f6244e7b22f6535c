"""
Time utilities - Parse clip boundaries and compute durations.

The parser is total: it never raises. Empty input yields 0 and unparseable
segments count as 0, so callers must validate the shape of the input
(see validators.is_valid_time) before trusting the result.
"""

from typing import Optional


def _segment_value(segment: str) -> float:
    try:
        return float(segment)
    except ValueError:
        return 0.0


def parse_time_to_seconds(text: Optional[str]) -> int:
    """
    Convert a time string to whole seconds.

    Segments are read right to left as seconds, minutes, hours, so both
    "HH:MM:SS" and "MM:SS" work. Fractional seconds are truncated.

    Args:
        text: Time string such as "00:03:01", "04:05" or "01:02.5"

    Returns:
        Number of seconds, 0 for empty input

    Examples:
        >>> parse_time_to_seconds("00:03:01")
        181
        >>> parse_time_to_seconds("04:05")
        245
    """
    if not text:
        return 0

    total = 0.0
    multiplier = 1
    for segment in reversed(str(text).strip().split(":")):
        total += multiplier * _segment_value(segment.strip())
        multiplier *= 60
    return int(total)


def compute_duration(start: Optional[str], end: Optional[str]) -> int:
    """Clip duration in seconds. May be zero or negative; callers reject that."""
    return parse_time_to_seconds(end) - parse_time_to_seconds(start)


def format_seconds(seconds: float) -> str:
    """Render seconds as HH:MM:SS."""
    seconds = max(0, int(seconds))
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
