"""Slot generation for the booking page.

Turns weekly availability windows, an event duration and the confirmed
bookings of a day into the list of candidate time slots for that day.
Candidates start every ``STEP_MINUTES`` from each window's start, so slots
of one window may overlap each other when the duration is longer than the
step.
"""

import re
from collections.abc import Iterable, Mapping
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any

from pydantic import BaseModel

STEP_MINUTES = 15
DEFAULT_DURATION_MINUTES = 30

_CLOCK_PATTERN = re.compile(r'^([01]\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?$')


class SlotValidationError(ValueError):
    """Raised when availability or booking data cannot be turned into slots."""


class TimeSlot(BaseModel):
    start: datetime
    end: datetime
    available: bool = True


def parse_clock_time(value: Any) -> time:
    """Parse an ``HH:MM`` (or ``HH:MM:SS``) wall-clock string."""
    if isinstance(value, time):
        return value.replace(microsecond=0)
    if not isinstance(value, str):
        raise SlotValidationError(f'Invalid time value {value!r}, expected HH:MM.')

    match = _CLOCK_PATTERN.match(value.strip())
    if match is None:
        raise SlotValidationError(f'Invalid time value {value!r}, expected HH:MM.')

    hour, minute, second = match.groups()
    return time(int(hour), int(minute), int(second or 0))


def weekday_index(day: date) -> int:
    """Day of week with Sunday as 0, as stored on availability windows."""
    return (day.weekday() + 1) % 7


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    # Half-open intervals: touching endpoints are not an overlap.
    return start_a < end_b and end_a > start_b


def _window_bounds(window: Any) -> tuple[time, time]:
    start = parse_clock_time(window.start_time)
    end = parse_clock_time(window.end_time)
    if start >= end:
        raise SlotValidationError(
            f'Availability window {window.start_time}-{window.end_time} must start before it ends.'
        )
    return start, end


def _windows_for_day(windows: Iterable[Any], day: date) -> list[tuple[time, time]]:
    weekday = weekday_index(day)
    return [
        _window_bounds(window)
        for window in windows
        if getattr(window, 'day_of_week', weekday) == weekday
    ]


def _busy_intervals(bookings: Iterable[Any], day: date, tz: tzinfo) -> list[tuple[datetime, datetime]]:
    intervals = []
    for booking in bookings:
        booked_start = datetime.combine(day, parse_clock_time(booking.start_time), tzinfo=tz)
        booked_end = datetime.combine(day, parse_clock_time(booking.end_time), tzinfo=tz)
        if booked_end <= booked_start:
            # Ends after midnight.
            booked_end += timedelta(days=1)
        intervals.append((booked_start, booked_end))
    return intervals


def _resolve_now(now: datetime | None, tz: tzinfo) -> datetime:
    if now is None:
        return datetime.now(tz)
    if now.tzinfo is None:
        return now.replace(tzinfo=tz)
    return now.astimezone(tz)


def _slots_for_window(
    day: date,
    window_start: time,
    window_end: time,
    duration: timedelta,
    busy: list[tuple[datetime, datetime]],
    tz: tzinfo,
) -> list[TimeSlot]:
    slots: list[TimeSlot] = []
    current = datetime.combine(day, window_start, tzinfo=tz)
    period_end = datetime.combine(day, window_end, tzinfo=tz)
    step = timedelta(minutes=STEP_MINUTES)

    while current < period_end:
        slot_end = current + duration
        if slot_end > period_end:
            break

        is_booked = any(overlaps(current, slot_end, booked_start, booked_end) for booked_start, booked_end in busy)
        slots.append(TimeSlot(start=current, end=slot_end, available=not is_booked))
        current += step

    return slots


def generate_time_slots(
    target_date: date,
    windows: Iterable[Any],
    bookings: Iterable[Any] = (),
    duration: int = DEFAULT_DURATION_MINUTES,
    *,
    available_only: bool = False,
    tz: tzinfo | None = None,
    now: datetime | None = None,
) -> list[TimeSlot]:
    """Generate the time slots of ``target_date``.

    ``windows`` are availability windows (``day_of_week``, ``start_time``,
    ``end_time``); windows for other weekdays are ignored. ``bookings`` are
    the confirmed bookings of that date (``start_time``, ``end_time``).
    Slots overlapping a booking are flagged unavailable, or dropped when
    ``available_only`` is set. Past dates produce no slots, and on the
    current date only slots starting after ``now`` are kept.

    Raises ``SlotValidationError`` for malformed times or a non-positive
    duration.
    """
    if duration <= 0:
        raise SlotValidationError('Slot duration must be a positive number of minutes.')

    tz = tz or timezone.utc
    day_windows = _windows_for_day(windows, target_date)
    busy = _busy_intervals(bookings, target_date, tz)

    current_moment = _resolve_now(now, tz)
    if not day_windows or target_date < current_moment.date():
        return []

    slot_duration = timedelta(minutes=duration)
    slots: list[TimeSlot] = []
    for window_start, window_end in day_windows:
        slots.extend(_slots_for_window(target_date, window_start, window_end, slot_duration, busy, tz))

    slots.sort(key=lambda slot: slot.start)

    if target_date == current_moment.date():
        slots = [slot for slot in slots if slot.start > current_moment]

    if available_only:
        slots = [slot for slot in slots if slot.available]

    return slots


def is_slot_available(
    start: datetime,
    end: datetime,
    windows: Iterable[Any],
    bookings: Iterable[Any] = (),
) -> bool:
    """Check that ``[start, end)`` fits one availability window and clashes with no booking."""
    if end <= start:
        return False

    tz = start.tzinfo or timezone.utc
    day = start.date()
    if end.date() != day:
        return False

    fits_window = False
    for window_start, window_end in _windows_for_day(windows, day):
        window_open = datetime.combine(day, window_start, tzinfo=tz)
        window_close = datetime.combine(day, window_end, tzinfo=tz)
        if window_open <= start and end <= window_close:
            fits_window = True
            break

    if not fits_window:
        return False

    return not any(
        overlaps(start, end, booked_start, booked_end)
        for booked_start, booked_end in _busy_intervals(bookings, day, tz)
    )


def next_available_slots(
    start_date: date,
    windows: Iterable[Any],
    bookings_by_date: Mapping[date, Iterable[Any]],
    duration: int = DEFAULT_DURATION_MINUTES,
    *,
    limit: int = 10,
    horizon_days: int = 30,
    tz: tzinfo | None = None,
    now: datetime | None = None,
) -> list[TimeSlot]:
    """Collect up to ``limit`` open slots, looking ahead day by day from ``start_date``."""
    windows = list(windows)
    found: list[TimeSlot] = []

    for offset in range(horizon_days):
        if len(found) >= limit:
            break
        day = start_date + timedelta(days=offset)
        found.extend(
            generate_time_slots(
                day,
                windows,
                bookings_by_date.get(day, ()),
                duration,
                available_only=True,
                tz=tz,
                now=now,
            )
        )

    return found[:limit]
