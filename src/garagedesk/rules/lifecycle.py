"""Appointment status machine, keyed by the acting role.

Each role has its own table of ``from_status -> allowed targets``; the
extra per-role conditions (clients act on their own bookings, technicians
on their own assignments) are checked after the table lookup.
"""

from __future__ import annotations

from ..domain import (
    CANCELLED,
    CONFIRMED,
    FINALIZED,
    IN_PROGRESS,
    PENDING,
    Actor,
    Appointment,
    AppointmentStatus,
    Role,
)
from ..results import INVALID_STATE, INVALID_TRANSITION, Failure, Ok, Result

_STAFF_TABLE: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    PENDING: frozenset({CONFIRMED, IN_PROGRESS, FINALIZED, CANCELLED}),
    CONFIRMED: frozenset({PENDING, IN_PROGRESS, FINALIZED, CANCELLED}),
    IN_PROGRESS: frozenset({FINALIZED, CANCELLED}),
}

TRANSITIONS: dict[Role, dict[AppointmentStatus, frozenset[AppointmentStatus]]] = {
    # Grace period: a client may withdraw a request until the shop confirms it.
    "client": {PENDING: frozenset({CANCELLED})},
    "receptionist": _STAFF_TABLE,
    "administrator": _STAFF_TABLE,
    "technician": {
        PENDING: frozenset({IN_PROGRESS}),
        CONFIRMED: frozenset({IN_PROGRESS}),
        IN_PROGRESS: frozenset({FINALIZED}),
    },
}


def allowed_targets(role: Role, from_status: AppointmentStatus) -> frozenset[AppointmentStatus]:
    return TRANSITIONS[role].get(from_status, frozenset())


def transition(
    appointment: Appointment,
    actor: Actor,
    target: AppointmentStatus,
    *,
    has_service_log: bool,
) -> Result[Appointment]:
    current = appointment.status
    if appointment.is_terminal:
        return Failure(INVALID_STATE, f"Appointment #{appointment.id} is {current} and can no longer change.")
    if target == current:
        return Failure(INVALID_TRANSITION, f"Appointment #{appointment.id} is already {current}.")
    if target not in allowed_targets(actor.role, current):
        return Failure(INVALID_TRANSITION, f"A {actor.role} cannot move an appointment from {current} to {target}.")

    if actor.role == "client" and appointment.client_id != actor.user_id:
        return Failure(INVALID_TRANSITION, "Clients can only cancel their own appointments.")
    if actor.role == "technician" and appointment.technician_id != actor.user_id:
        return Failure(INVALID_TRANSITION, f"Appointment #{appointment.id} is not assigned to this technician.")
    if target == FINALIZED and not has_service_log:
        return Failure(INVALID_TRANSITION, f"Appointment #{appointment.id} has no service log to close.")

    return Ok(appointment.with_status(target))


def can_edit(appointment: Appointment, actor: Actor) -> Result[None]:
    if appointment.is_terminal:
        return Failure(INVALID_STATE, f"Appointment #{appointment.id} is {appointment.status} and can no longer change.")
    if not actor.is_staff:
        return Failure(INVALID_TRANSITION, "Only the front desk can reschedule appointments.")
    return Ok(None)


def can_delete(appointment: Appointment, actor: Actor) -> Result[None]:
    # Finalized work stays on record; cancelled ones are kept as history.
    if appointment.is_terminal:
        return Failure(INVALID_STATE, f"Appointment #{appointment.id} is {appointment.status} and cannot be deleted.")
    if not actor.is_staff:
        return Failure(INVALID_TRANSITION, "Only the front desk can delete appointments.")
    return Ok(None)
