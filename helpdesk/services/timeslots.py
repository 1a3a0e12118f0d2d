"""Same-day wall-clock time ranges expressed as minutes since midnight."""

import re
from datetime import date, datetime

from helpdesk.core.errors import ValidationError

MINUTES_PER_DAY = 24 * 60

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def parse_time(value: str) -> int:
    """``"HH:MM"`` -> minutes since midnight (0-1439)."""
    match = _TIME_RE.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValidationError(f"Invalid time {value!r}, expected HH:MM")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValidationError(f"Invalid time {value!r}, expected HH:MM")
    return hours * 60 + minutes


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def overlaps(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open [start, end) intersection; ranges that only touch do not overlap."""
    return start_a < end_b and end_a > start_b


def time_ranges_overlap(start_a: str, end_a: str, start_b: str, end_b: str) -> bool:
    return overlaps(parse_time(start_a), parse_time(end_a), parse_time(start_b), parse_time(end_b))


def validate_range(start_time: str, end_time: str) -> tuple[int, int]:
    start, end = parse_time(start_time), parse_time(end_time)
    if start >= end:
        raise ValidationError("Start time must be before end time")
    return start, end


def end_time_for(start_time: str, duration_minutes: int) -> str:
    """End of a slot of ``duration_minutes`` starting at ``start_time``; no overnight spans."""
    end = parse_time(start_time) + duration_minutes
    if duration_minutes <= 0 or end > MINUTES_PER_DAY - 1:
        raise ValidationError(f"A {duration_minutes}-minute slot starting at {start_time} does not fit in the day")
    return format_minutes(end)


def to_date(value: date | datetime | str) -> date:
    """Normalize a date, datetime or ISO string to its calendar day."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00")).date()
    except (AttributeError, ValueError) as e:
        raise ValidationError(f"Invalid date {value!r}") from e
