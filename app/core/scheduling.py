"""Interval and time utilities for appointment scheduling."""

import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.exceptions import ValidationException

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

APPOINTMENT_NUMBER_PREFIX = "APT"


@dataclass(frozen=True)
class TimeSlot:
    """A fixed-duration candidate window within working hours."""

    start: datetime
    end: datetime
    label: str


def get_timezone(name: str) -> ZoneInfo:
    """Resolve an IANA timezone name."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationException(f"Unknown timezone: {name}") from e


def parse_time(value: str) -> time:
    """
    Parse a 24-hour ``HH:MM`` wall-clock string.

    Raises:
        ValidationException: If the string is not a valid ``HH:MM`` time
    """
    match = TIME_PATTERN.match(value or "")
    if not match:
        raise ValidationException(f"Invalid time '{value}', expected HH:MM (24-hour)")
    return time(int(match.group(1)), int(match.group(2)))


def combine_date_time(day: date, hhmm: str, tz: ZoneInfo) -> datetime:
    """Combine a calendar date and an ``HH:MM`` string into an aware instant."""
    return datetime.combine(day, parse_time(hhmm), tzinfo=tz)


def compute_interval(
    day: date,
    hhmm: str,
    duration_minutes: int,
    tz: ZoneInfo,
) -> tuple[datetime, datetime]:
    """
    Compute the half-open ``[start_at, end_at)`` interval of an appointment.

    The wall-clock start is read in the clinic timezone; both bounds are
    returned in UTC so the duration is elapsed time even across a DST change.

    Args:
        day: Scheduled calendar date
        hhmm: Scheduled wall-clock time
        duration_minutes: Length of the appointment in minutes
        tz: Clinic timezone

    Returns:
        Tuple of (start_at, end_at)

    Raises:
        ValidationException: On malformed time or non-positive duration
    """
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int):
        raise ValidationException("Duration must be a whole number of minutes")
    if duration_minutes <= 0:
        raise ValidationException("Duration must be greater than zero")

    start_at = combine_date_time(day, hhmm, tz).astimezone(UTC)
    end_at = start_at + timedelta(minutes=duration_minutes)
    return start_at, end_at


def intervals_overlap(
    start: datetime,
    end: datetime,
    other_start: datetime,
    other_end: datetime,
) -> bool:
    """
    Check whether ``[start, end)`` and ``[other_start, other_end)`` overlap.

    The test is the union of three boundary cases measured against the
    other interval: it starts inside it, it ends inside it, or it contains
    it. For non-empty intervals this equals
    ``start < other_end and other_start < end``. Empty intervals never
    overlap anything.
    """
    if start >= end or other_start >= other_end:
        return False

    starts_during = other_start <= start < other_end
    ends_during = other_start < end <= other_end
    contains = start <= other_start and end >= other_end
    return starts_during or ends_during or contains


def day_window(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """
    Inclusive calendar-day bounds ``[00:00:00.000, 23:59:59.999]``.

    Used for day-based lookups (schedules, availability). Conflict
    detection uses half-open intervals instead.
    """
    start_of_day = datetime.combine(day, time(0, 0), tzinfo=tz)
    end_of_day = datetime.combine(day, time(23, 59, 59, 999000), tzinfo=tz)
    return start_of_day, end_of_day


def generate_slots(
    day: date,
    slot_minutes: int,
    work_start_hour: int,
    work_end_hour: int,
    tz: ZoneInfo,
) -> list[TimeSlot]:
    """
    Enumerate candidate slots across working hours.

    Slots step from the start of working hours in ``slot_minutes``
    increments; a slot whose end falls after the end of working hours is
    discarded.
    """
    if slot_minutes <= 0:
        raise ValidationException("Slot duration must be greater than zero")

    opening = datetime.combine(day, time(0, 0), tzinfo=tz) + timedelta(hours=work_start_hour)
    closing = datetime.combine(day, time(0, 0), tzinfo=tz) + timedelta(hours=work_end_hour)
    step = timedelta(minutes=slot_minutes)

    # Step in UTC; labels stay in clinic wall-clock time
    slots: list[TimeSlot] = []
    slot_start = opening.astimezone(UTC)
    closing = closing.astimezone(UTC)
    while slot_start + step <= closing:
        local_start = slot_start.astimezone(tz)
        slots.append(
            TimeSlot(
                start=local_start,
                end=(slot_start + step).astimezone(tz),
                label=local_start.strftime("%H:%M"),
            )
        )
        slot_start += step
    return slots


def filter_available_slots(
    slots: list[TimeSlot],
    booked: list[tuple[datetime, datetime]],
    now: datetime,
) -> list[TimeSlot]:
    """Keep slots that overlap no booked interval and start strictly after ``now``."""
    return [
        slot
        for slot in slots
        if slot.start > now
        and not any(intervals_overlap(slot.start, slot.end, b_start, b_end) for b_start, b_end in booked)
    ]


def format_appointment_number(year: int, sequence: int) -> str:
    """Format a human-readable appointment number, e.g. ``APT-2025-00042``."""
    return f"{APPOINTMENT_NUMBER_PREFIX}-{year}-{sequence:05d}"
