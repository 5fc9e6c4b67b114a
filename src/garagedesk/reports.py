from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from .domain import (
    CANCELLED,
    CONFIRMED,
    FINALIZED,
    IN_PROGRESS,
    PENDING,
    Appointment,
    AppointmentStatus,
    ChecklistSnapshot,
)
from .rules.service_log import ServiceJob


@dataclass(frozen=True)
class AppointmentStats:
    today: int
    upcoming: int
    in_progress: int
    completed: int


def appointment_stats(appointments: Iterable[Appointment], today: date) -> AppointmentStats:
    appts = list(appointments)
    return AppointmentStats(
        today=sum(1 for a in appts if a.scheduled_date == today and a.status != CANCELLED),
        upcoming=sum(1 for a in appts if a.scheduled_date > today and a.status in (PENDING, CONFIRMED)),
        in_progress=sum(1 for a in appts if a.status == IN_PROGRESS),
        completed=sum(1 for a in appts if a.status == FINALIZED),
    )


def split_board(
    appointments: Iterable[Appointment], today: date
) -> tuple[list[Appointment], list[Appointment]]:
    """(upcoming, history) for the front desk board.

    Upcoming runs from today onward, soonest first; history is everything
    earlier, latest first. Cancellations in the past are left out of both.
    """
    upcoming: list[Appointment] = []
    history: list[Appointment] = []
    for a in appointments:
        if a.scheduled_date < today:
            if a.status != CANCELLED:
                history.append(a)
        else:
            upcoming.append(a)
    upcoming.sort(key=lambda a: (a.scheduled_date, a.scheduled_time))
    history.sort(key=lambda a: (a.scheduled_date, a.scheduled_time), reverse=True)
    return upcoming, history


def technician_queue(appointments: Iterable[Appointment], technician_id: int) -> list[Appointment]:
    queue = [a for a in appointments if a.technician_id == technician_id and a.is_active]
    return sorted(queue, key=lambda a: (a.scheduled_date, a.scheduled_time))


def service_history(
    appointments: Iterable[Appointment],
    *,
    client_id: Optional[int] = None,
    vehicle_id: Optional[int] = None,
) -> list[Appointment]:
    """Closed (finalized or cancelled) appointments of a client or vehicle, latest first."""
    closed = [
        a
        for a in appointments
        if a.is_terminal
        and (client_id is None or a.client_id == client_id)
        and (vehicle_id is None or a.vehicle_id == vehicle_id)
    ]
    return sorted(closed, key=lambda a: (a.scheduled_date, a.scheduled_time), reverse=True)


_PROGRESS = (
    ("Requested", frozenset({PENDING, CONFIRMED, IN_PROGRESS, FINALIZED})),
    ("Confirmed", frozenset({CONFIRMED, IN_PROGRESS, FINALIZED})),
    ("In workshop", frozenset({IN_PROGRESS, FINALIZED})),
    ("Ready", frozenset({FINALIZED})),
)


def progress_steps(status: AppointmentStatus) -> list[tuple[str, bool]]:
    """Tracker shown to clients: each stage and whether it has been reached."""
    if status == CANCELLED:
        return [(label, False) for label, _ in _PROGRESS]
    return [(label, status in reached) for label, reached in _PROGRESS]


def checklist_progress(checklist: ChecklistSnapshot) -> tuple[int, int, int]:
    total = len(checklist.items)
    done = sum(1 for _, is_done in checklist.items if is_done)
    percent = round(done * 100 / total) if total else 0
    return done, total, percent


@dataclass(frozen=True)
class ServiceLogSummary:
    finalized: int
    in_progress: int
    revenue: Decimal


def service_log_summary(jobs: Iterable[ServiceJob]) -> ServiceLogSummary:
    finalized = in_progress = 0
    revenue = Decimal("0.00")
    for job in jobs:
        if job.appointment.status == FINALIZED:
            finalized += 1
        elif job.appointment.status == IN_PROGRESS:
            in_progress += 1
        if job.log is not None and job.appointment.status in (IN_PROGRESS, FINALIZED):
            revenue += job.log.final_cost
    return ServiceLogSummary(finalized=finalized, in_progress=in_progress, revenue=revenue)


def monthly_income(jobs: Iterable[ServiceJob]) -> "OrderedDict[str, Decimal]":
    """Stored final cost of finalized jobs, by month of the appointment (YYYY-MM)."""
    totals: dict[str, Decimal] = {}
    for job in jobs:
        if job.appointment.status != FINALIZED or job.log is None:
            continue
        key = job.appointment.scheduled_date.strftime("%Y-%m")
        totals[key] = totals.get(key, Decimal("0.00")) + job.log.final_cost
    return OrderedDict(sorted(totals.items()))
