"""Admission checks run before an appointment is created or moved.

These are gates at the boundary. Two bookings racing for the same vehicle
can both pass ``can_create``; the caller has to run the check and the
insert under one lock or transaction.
"""

from __future__ import annotations

from datetime import date, time
from typing import Iterable, Optional

from ..domain import Appointment, BusinessHours, format_time
from ..results import (
    ACTIVE_APPOINTMENT_CONFLICT,
    NON_WORKING_DAY,
    OUTSIDE_BUSINESS_HOURS,
    STALE_STATE,
    Failure,
    Ok,
    Result,
)
from .time_slots import DEFAULT_STEP_MINUTES, generate_slots, is_working_day


def can_create(
    vehicle_id: int,
    existing: Iterable[Appointment],
    *,
    ignore_appointment_id: Optional[int] = None,
) -> Result[None]:
    for appt in existing:
        if appt.vehicle_id != vehicle_id or appt.id == ignore_appointment_id:
            continue
        if appt.is_active:
            return Failure(
                ACTIVE_APPOINTMENT_CONFLICT,
                f"Vehicle {vehicle_id} already has an active appointment (#{appt.id}, {appt.status}).",
            )
    return Ok(None)


def validate_slot(
    day: date,
    at: time,
    hours: BusinessHours,
    step_minutes: int = DEFAULT_STEP_MINUTES,
) -> Result[None]:
    if not is_working_day(day, hours.working_days):
        return Failure(NON_WORKING_DAY, f"{day.isoformat()} is not a working day.")
    if at not in generate_slots(hours.start, hours.end, step_minutes):
        return Failure(
            OUTSIDE_BUSINESS_HOURS,
            f"{format_time(at)} is not a bookable slot "
            f"({format_time(hours.start)}-{format_time(hours.end)}, every {step_minutes} min).",
        )
    return Ok(None)


def admit(
    vehicle_id: int,
    day: date,
    at: time,
    hours: BusinessHours,
    existing: Iterable[Appointment],
    step_minutes: int = DEFAULT_STEP_MINUTES,
) -> Result[None]:
    slot = validate_slot(day, at, hours, step_minutes)
    if not slot.ok:
        return slot
    return can_create(vehicle_id, existing)


def check_version(entity: str, expected: int, actual: int) -> Result[None]:
    if expected != actual:
        return Failure(
            STALE_STATE,
            f"{entity} was changed by someone else (version {actual}, expected {expected}). Reload and retry.",
        )
    return Ok(None)
