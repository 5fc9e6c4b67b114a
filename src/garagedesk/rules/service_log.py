"""Service log ("bitácora") working state, coupled with its appointment.

An appointment and its log only change together, as a ``ServiceJob``.
Every operation returns a new job and the job checks its invariants on
construction:

* a finalized appointment always has a finalized log, and the reverse;
* a finalized log never changes again.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Mapping, Optional

from ..domain import (
    FINALIZED,
    Actor,
    Appointment,
    AppointmentStatus,
    ChecklistSnapshot,
    PartUsage,
    ServiceCatalogEntry,
    ServiceLog,
    SparePart,
)
from ..results import INVALID_STATE, Failure, Ok, Result
from . import lifecycle
from .costs import compute_total


class InvariantError(RuntimeError):
    pass


@dataclass(frozen=True)
class ServiceJob:
    appointment: Appointment
    log: Optional[ServiceLog] = None

    def __post_init__(self) -> None:
        appt, log = self.appointment, self.log
        if log is not None and log.appointment_id != appt.id:
            raise InvariantError(f"Log of appointment #{log.appointment_id} attached to appointment #{appt.id}")
        if appt.status == FINALIZED and (log is None or not log.is_finalized):
            raise InvariantError(f"Appointment #{appt.id} is finalized without a finalized service log")
        if log is not None and log.is_finalized and appt.status != FINALIZED:
            raise InvariantError(f"Service log of appointment #{appt.id} is finalized but the appointment is {appt.status}")

    @property
    def is_locked(self) -> bool:
        return self.appointment.is_terminal or (self.log is not None and self.log.is_finalized)


def _locked(job: ServiceJob) -> Failure:
    return Failure(
        INVALID_STATE,
        f"Service log of appointment #{job.appointment.id} is closed ({job.appointment.status}).",
    )


def _require_log(job: ServiceJob) -> ServiceLog:
    if job.log is None:
        raise ValueError(f"Appointment #{job.appointment.id} has no service log yet; open it first")
    return job.log


def create_or_load(job: ServiceJob, service: Optional[ServiceCatalogEntry]) -> Result[ServiceJob]:
    """Return the job with its log, creating the log if it does not exist.

    An existing log is returned as stored. A new one copies the current
    checklist template of ``service`` with every step not done; a job
    whose service is no longer in the catalog starts with no steps and a
    base cost of 0.
    """
    if job.log is not None:
        return Ok(job)
    if job.appointment.is_terminal:
        return _locked(job)

    base_cost = service.base_cost if service is not None else Decimal("0")
    checklist = service.checklist_template.snapshot() if service is not None else None
    log = ServiceLog(
        appointment_id=job.appointment.id,
        checklist=checklist if checklist is not None else ChecklistSnapshot(),
        base_cost=base_cost,
        final_cost=compute_total(base_cost, ()),
    )
    return Ok(replace(job, log=log))


def toggle_step(job: ServiceJob, step: str) -> Result[ServiceJob]:
    log = _require_log(job)
    if job.is_locked:
        return _locked(job)
    if step not in log.checklist:
        raise ValueError(f"Unknown checklist step: {step!r}")
    return Ok(replace(job, log=replace(log, checklist=log.checklist.toggled(step))))


def set_parts(
    job: ServiceJob,
    parts: Iterable[tuple[int, int]],
    catalog: Mapping[int, SparePart],
) -> Result[ServiceJob]:
    """Replace the parts list and recompute the stored final cost.

    A part already on the log keeps the unit cost recorded when it was
    first used; new parts take the current catalog cost. Repeated part ids
    are merged by adding their quantities.
    """
    log = _require_log(job)
    if job.is_locked:
        return _locked(job)

    recorded = {p.part_id: p.unit_cost for p in log.parts_used}
    quantities: dict[int, int] = {}
    for part_id, quantity in parts:
        if int(quantity) < 1:
            raise ValueError(f"Part {part_id}: quantity must be >= 1")
        quantities[int(part_id)] = quantities.get(int(part_id), 0) + int(quantity)

    used: list[PartUsage] = []
    for part_id, quantity in quantities.items():
        if part_id in recorded:
            unit_cost = recorded[part_id]
        elif part_id in catalog:
            unit_cost = catalog[part_id].unit_cost
        else:
            raise ValueError(f"Unknown spare part id: {part_id}")
        used.append(PartUsage(part_id=part_id, quantity=quantity, unit_cost=unit_cost))

    new_log = replace(
        log,
        parts_used=tuple(used),
        final_cost=compute_total(log.base_cost, used),
    )
    return Ok(replace(job, log=new_log))


def set_observations(job: ServiceJob, observations: str) -> Result[ServiceJob]:
    log = _require_log(job)
    if job.is_locked:
        return _locked(job)
    return Ok(replace(job, log=replace(log, observations=observations)))


def _close(
    job: ServiceJob,
    actor: Actor,
    *,
    complete_checklist: bool,
    now: Optional[datetime],
) -> Result[ServiceJob]:
    if job.is_locked:
        return _locked(job)
    moved = lifecycle.transition(job.appointment, actor, FINALIZED, has_service_log=job.log is not None)
    if isinstance(moved, Failure):
        return moved

    log = _require_log(job)
    checklist = log.checklist.all_done() if complete_checklist else log.checklist
    closed = replace(
        log,
        checklist=checklist,
        final_cost=compute_total(log.base_cost, log.parts_used),
        completed_at=now or datetime.now(),
    )
    return Ok(ServiceJob(appointment=moved.value, log=closed))


def finalize(job: ServiceJob, actor: Actor, *, now: Optional[datetime] = None) -> Result[ServiceJob]:
    """Mark the service completed. Irreversible.

    Every checklist step is set to done, whatever was ticked before:
    completing the service is taken to mean the whole checklist was
    carried out. The audit trail cannot tell steps ticked by hand from
    steps closed this way.
    """
    return _close(job, actor, complete_checklist=True, now=now)


def transition(
    job: ServiceJob,
    actor: Actor,
    target: AppointmentStatus,
    *,
    now: Optional[datetime] = None,
) -> Result[ServiceJob]:
    """Move the appointment through the lifecycle, keeping the log in step.

    Moving to finalized closes the log as it stands: a partly ticked
    checklist is kept partly ticked.
    """
    if target == FINALIZED:
        return _close(job, actor, complete_checklist=False, now=now)
    moved = lifecycle.transition(job.appointment, actor, target, has_service_log=job.log is not None)
    if isinstance(moved, Failure):
        return moved
    return Ok(replace(job, appointment=moved.value))
