from __future__ import annotations

from datetime import date, datetime, time, timedelta

DEFAULT_STEP_MINUTES = 30


def generate_slots(start: time, end: time, step_minutes: int = DEFAULT_STEP_MINUTES) -> list[time]:
    """Bookable times of day in [start, end), ``step_minutes`` apart.

    Recomputed from the hours passed in on every call, so a change of
    business hours is visible immediately.
    """
    if step_minutes <= 0:
        raise ValueError("step_minutes must be positive")

    anchor = date(2000, 1, 1)
    current = datetime.combine(anchor, start)
    stop = datetime.combine(anchor, end)
    step = timedelta(minutes=step_minutes)

    slots: list[time] = []
    while current < stop:
        slots.append(current.time())
        current += step
    return slots


def weekday_index(day: date) -> int:
    # 0=Sunday .. 6=Saturday; date.weekday() counts from Monday.
    return (day.weekday() + 1) % 7


def is_working_day(day: date, working_days: frozenset[int] | set[int]) -> bool:
    if isinstance(day, datetime):
        raise TypeError("is_working_day expects a calendar date, not a timestamp")
    return weekday_index(day) in working_days
