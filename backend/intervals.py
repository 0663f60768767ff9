# lesson-booking-backend/intervals.py

from datetime import date, datetime, time, timedelta

from exceptions import InvalidDuration, ValidationError

ALLOWED_DURATIONS = frozenset({30, 60})


def validate_duration(duration_minutes) -> int:
    if isinstance(duration_minutes, bool) or duration_minutes not in ALLOWED_DURATIONS:
        raise InvalidDuration(duration_minutes, ALLOWED_DURATIONS)
    return duration_minutes


def compute_end(start: time, duration_minutes: int) -> time:
    """
    Return the wall-clock end of a slot starting at `start`.

    No timezone conversion happens here. Slots must finish on the day they
    start, so an end at or after midnight is rejected.
    """
    validate_duration(duration_minutes)
    anchor = datetime.combine(date.min, start.replace(tzinfo=None))
    end = anchor + timedelta(minutes=duration_minutes)
    if end.date() != anchor.date():
        raise ValidationError(
            "Slot must end before midnight",
            details={"start_time": start.strftime("%H:%M"), "duration": duration_minutes},
        )
    return end.time()


def overlaps(a_start: time, a_end: time, b_start: time, b_end: time) -> bool:
    """Half-open overlap test: [a_start, a_end) and [b_start, b_end) share an instant."""
    return a_start < b_end and a_end > b_start
