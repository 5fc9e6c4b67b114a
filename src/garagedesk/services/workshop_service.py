from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, time
from typing import Callable, Optional

from psycopg import Connection

from ..config import BusinessConfig
from ..domain import (
    Actor,
    Appointment,
    AppointmentStatus,
    BusinessHours,
    format_time,
)
from ..repositories.appointment_repo import AppointmentRepository
from ..repositories.catalog_repo import ServiceCatalogRepository, SparePartRepository
from ..repositories.service_log_repo import ServiceLogRepository
from ..repositories.settings_repo import SettingsRepository
from ..reports import service_history
from ..results import STALE_STATE, Failure, Result, RuleViolation, T
from ..rules import guard, lifecycle, service_log
from ..rules.service_log import ServiceJob
from ..rules.time_slots import generate_slots

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    pass


class NotFoundError(ValidationError):
    pass


class AccessDenied(Exception):
    pass


@dataclass
class BookAppointmentInput:
    client_id: int
    vehicle_id: int
    service_id: int
    scheduled_date: date
    scheduled_time: time
    technician_id: Optional[int] = None
    notes: str = ""


@dataclass
class PartLineInput:
    part_id: int
    quantity: int


class WorkshopService:
    def __init__(
        self,
        *,
        appointment_repo: AppointmentRepository,
        service_log_repo: ServiceLogRepository,
        service_repo: ServiceCatalogRepository,
        part_repo: SparePartRepository,
        settings_repo: SettingsRepository,
        business: BusinessConfig,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.appointment_repo = appointment_repo
        self.service_log_repo = service_log_repo
        self.service_repo = service_repo
        self.part_repo = part_repo
        self.settings_repo = settings_repo
        self.business = business
        self.today = today

    # -- business hours ---------------------------------------------------

    def business_hours(self, conn: Connection) -> BusinessHours:
        stored = self.settings_repo.get_business_hours(conn)
        return stored if stored is not None else self.business.default_hours

    def update_business_hours(self, conn: Connection, actor: Actor, hours: BusinessHours) -> BusinessHours:
        if actor.role != "administrator":
            raise AccessDenied("Only administrators can change business hours.")
        if hours.start >= hours.end:
            raise ValidationError("Opening time must be earlier than closing time.")
        if not hours.working_days:
            raise ValidationError("At least one working day is required.")

        self.settings_repo.save_business_hours(conn, hours)
        logger.info(
            "Business hours set to %s-%s on days %s by user %s",
            format_time(hours.start),
            format_time(hours.end),
            sorted(hours.working_days),
            actor.user_id,
        )
        return hours

    def time_slots(self, conn: Connection) -> list[time]:
        hours = self.business_hours(conn)
        return generate_slots(hours.start, hours.end, self.business.slot_minutes)

    # -- appointments -----------------------------------------------------

    def list_appointments(self, conn: Connection, limit: int = 100) -> list[Appointment]:
        return self.appointment_repo.list(conn, limit=limit)

    def get_appointment(self, conn: Connection, appointment_id: int) -> Appointment:
        appt = self.appointment_repo.get(conn, appointment_id)
        if appt is None:
            raise NotFoundError(f"Appointment #{appointment_id} not found.")
        return appt

    def book_appointment(self, conn: Connection, actor: Actor, data: BookAppointmentInput) -> int:
        if actor.role == "technician":
            raise AccessDenied("Technicians cannot book appointments.")
        if actor.role == "client" and data.client_id != actor.user_id:
            raise AccessDenied("Clients can only book appointments for themselves.")
        if actor.role == "client" and data.scheduled_date < self.today():
            raise ValidationError(f"Cannot book a date in the past: {data.scheduled_date.isoformat()}")
        if self.service_repo.get(conn, data.service_id) is None:
            raise ValidationError(f"Unknown service id: {data.service_id}")

        # Hours are read inside the booking transaction: never validate against a stale copy.
        hours = self.business_hours(conn)
        self.appointment_repo.lock_vehicle(conn, data.vehicle_id)
        existing = self.appointment_repo.list_for_vehicle(conn, data.vehicle_id)
        self._enforce(
            guard.admit(
                data.vehicle_id,
                data.scheduled_date,
                data.scheduled_time,
                hours,
                existing,
                self.business.slot_minutes,
            ),
            f"booking for vehicle {data.vehicle_id}",
        )

        appointment_id = self.appointment_repo.create(
            conn,
            client_id=data.client_id,
            vehicle_id=data.vehicle_id,
            service_id=data.service_id,
            technician_id=data.technician_id,
            scheduled_date=data.scheduled_date,
            scheduled_time=data.scheduled_time,
            notes=data.notes.strip(),
        )
        logger.info(
            "Appointment #%s booked for vehicle %s on %s %s by %s %s",
            appointment_id,
            data.vehicle_id,
            data.scheduled_date.isoformat(),
            format_time(data.scheduled_time),
            actor.role,
            actor.user_id,
        )
        return appointment_id

    def reschedule(
        self,
        conn: Connection,
        actor: Actor,
        appointment_id: int,
        *,
        scheduled_date: date,
        scheduled_time: time,
        expected_version: Optional[int] = None,
    ) -> Appointment:
        appt = self.get_appointment(conn, appointment_id)
        self._check_version("Appointment", expected_version, appt.version)
        self._enforce(lifecycle.can_edit(appt, actor), f"reschedule of appointment #{appointment_id}")
        hours = self.business_hours(conn)
        self._enforce(
            guard.validate_slot(scheduled_date, scheduled_time, hours, self.business.slot_minutes),
            f"reschedule of appointment #{appointment_id}",
        )

        moved = replace(appt, scheduled_date=scheduled_date, scheduled_time=scheduled_time)
        self._update_appointment(conn, moved, appt.version)
        logger.info(
            "Appointment #%s moved to %s %s",
            appointment_id,
            scheduled_date.isoformat(),
            format_time(scheduled_time),
        )
        return replace(moved, version=appt.version + 1)

    def assign_technician(
        self,
        conn: Connection,
        actor: Actor,
        appointment_id: int,
        technician_id: Optional[int],
        *,
        expected_version: Optional[int] = None,
    ) -> Appointment:
        appt = self.get_appointment(conn, appointment_id)
        self._check_version("Appointment", expected_version, appt.version)
        self._enforce(lifecycle.can_edit(appt, actor), f"technician change on appointment #{appointment_id}")

        assigned = replace(appt, technician_id=technician_id)
        self._update_appointment(conn, assigned, appt.version)
        logger.info("Appointment #%s assigned to technician %s", appointment_id, technician_id)
        return replace(assigned, version=appt.version + 1)

    def change_status(
        self,
        conn: Connection,
        actor: Actor,
        appointment_id: int,
        target: AppointmentStatus,
        *,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> ServiceJob:
        job = self.get_job(conn, appointment_id)
        self._check_version("Appointment", expected_version, job.appointment.version)
        changed = self._enforce(
            service_log.transition(job, actor, target, now=now),
            f"{job.appointment.status} -> {target} on appointment #{appointment_id}",
        )
        saved = self._save_job(conn, job, changed)
        logger.info(
            "Appointment #%s: %s -> %s by %s %s",
            appointment_id,
            job.appointment.status,
            target,
            actor.role,
            actor.user_id,
        )
        return saved

    def delete_appointment(
        self,
        conn: Connection,
        actor: Actor,
        appointment_id: int,
        *,
        expected_version: Optional[int] = None,
    ) -> None:
        appt = self.get_appointment(conn, appointment_id)
        self._check_version("Appointment", expected_version, appt.version)
        self._enforce(lifecycle.can_delete(appt, actor), f"delete of appointment #{appointment_id}")

        self.service_log_repo.delete_for_appointment(conn, appointment_id)
        if not self.appointment_repo.delete(conn, appointment_id, expected_version=appt.version):
            self._stale("Appointment", appointment_id)
        logger.info("Appointment #%s deleted by %s %s", appointment_id, actor.role, actor.user_id)

    # -- service logs -----------------------------------------------------

    def get_job(self, conn: Connection, appointment_id: int) -> ServiceJob:
        appt = self.get_appointment(conn, appointment_id)
        return ServiceJob(appointment=appt, log=self.service_log_repo.get_for_appointment(conn, appointment_id))

    def list_jobs(self, conn: Connection, limit: int = 200) -> list[ServiceJob]:
        appts = self.appointment_repo.list(conn, limit=limit)
        logs = self.service_log_repo.list_for_appointments(conn, [a.id for a in appts])
        return [ServiceJob(appointment=appt, log=logs.get(appt.id)) for appt in appts]

    def service_history(
        self,
        conn: Connection,
        actor: Actor,
        *,
        client_id: Optional[int] = None,
        vehicle_id: Optional[int] = None,
    ) -> list[Appointment]:
        if client_id is None and vehicle_id is None:
            raise ValidationError("A client or a vehicle is required.")
        if actor.role == "client" and client_id not in (None, actor.user_id):
            raise AccessDenied("Clients can only see their own service history.")

        if client_id is not None:
            appts = self.appointment_repo.list_for_client(conn, client_id)
        else:
            appts = self.appointment_repo.list_for_vehicle(conn, vehicle_id)
        if actor.role == "client":
            # A vehicle may have changed hands; only the client's own visits are shown.
            client_id = actor.user_id
        return service_history(appts, client_id=client_id, vehicle_id=vehicle_id)

    def open_service_log(self, conn: Connection, actor: Actor, appointment_id: int) -> ServiceJob:
        job = self.get_job(conn, appointment_id)
        self._ensure_can_work(actor, job.appointment)
        if job.log is not None:
            return job

        service = self.service_repo.get(conn, job.appointment.service_id)
        if service is None:
            logger.warning(
                "Service %s of appointment #%s is no longer in the catalog; opening log without checklist",
                job.appointment.service_id,
                appointment_id,
            )
        opened = self._enforce(service_log.create_or_load(job, service), f"opening log of appointment #{appointment_id}")
        saved = self._save_job(conn, job, opened)
        logger.info("Service log opened for appointment #%s with %s checklist steps", appointment_id, len(saved.log.checklist.items))
        return saved

    def toggle_step(
        self,
        conn: Connection,
        actor: Actor,
        appointment_id: int,
        step: str,
        *,
        expected_version: Optional[int] = None,
    ) -> ServiceJob:
        job = self._job_with_log(conn, actor, appointment_id, expected_version)
        if step not in job.log.checklist:
            raise ValidationError(f"Unknown checklist step: {step!r}")
        changed = self._enforce(service_log.toggle_step(job, step), f"checklist change on appointment #{appointment_id}")
        return self._save_job(conn, job, changed)

    def set_parts(
        self,
        conn: Connection,
        actor: Actor,
        appointment_id: int,
        parts: list[PartLineInput],
        *,
        expected_version: Optional[int] = None,
    ) -> ServiceJob:
        job = self._job_with_log(conn, actor, appointment_id, expected_version)
        for p in parts:
            if p.quantity < 1:
                raise ValidationError("Part quantity must be at least 1.")

        recorded = {u.part_id for u in job.log.parts_used}
        requested = {p.part_id for p in parts}
        catalog = self.part_repo.get_many(conn, requested - recorded)
        unknown = sorted(requested - recorded - set(catalog))
        if unknown:
            raise ValidationError(f"Unknown spare part id(s): {', '.join(str(i) for i in unknown)}")

        changed = self._enforce(
            service_log.set_parts(job, [(p.part_id, p.quantity) for p in parts], catalog),
            f"parts change on appointment #{appointment_id}",
        )
        saved = self._save_job(conn, job, changed)
        logger.info(
            "Appointment #%s: %s part line(s), cost now %s",
            appointment_id,
            len(saved.log.parts_used),
            saved.log.final_cost,
        )
        return saved

    def set_observations(
        self,
        conn: Connection,
        actor: Actor,
        appointment_id: int,
        observations: str,
        *,
        expected_version: Optional[int] = None,
    ) -> ServiceJob:
        job = self._job_with_log(conn, actor, appointment_id, expected_version)
        changed = self._enforce(
            service_log.set_observations(job, observations.strip()),
            f"observations on appointment #{appointment_id}",
        )
        return self._save_job(conn, job, changed)

    def finalize_service(
        self,
        conn: Connection,
        actor: Actor,
        appointment_id: int,
        *,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> ServiceJob:
        job = self.get_job(conn, appointment_id)
        self._ensure_can_work(actor, job.appointment)
        if job.log is not None:
            self._check_version("Service log", expected_version, job.log.version)
        closed = self._enforce(service_log.finalize(job, actor, now=now), f"finalize of appointment #{appointment_id}")
        saved = self._save_job(conn, job, closed)
        logger.info(
            "Appointment #%s finalized by %s %s, final cost %s",
            appointment_id,
            actor.role,
            actor.user_id,
            saved.log.final_cost,
        )
        return saved

    # -- helpers ----------------------------------------------------------

    def _ensure_can_work(self, actor: Actor, appt: Appointment) -> None:
        if actor.is_staff:
            return
        if actor.role == "technician" and appt.technician_id == actor.user_id:
            return
        raise AccessDenied(f"{actor.role} {actor.user_id} cannot work on appointment #{appt.id}.")

    def _job_with_log(
        self,
        conn: Connection,
        actor: Actor,
        appointment_id: int,
        expected_version: Optional[int],
    ) -> ServiceJob:
        job = self.get_job(conn, appointment_id)
        self._ensure_can_work(actor, job.appointment)
        if job.log is None:
            raise ValidationError(f"Appointment #{appointment_id} has no service log yet.")
        self._check_version("Service log", expected_version, job.log.version)
        return job

    def _save_job(self, conn: Connection, before: ServiceJob, after: ServiceJob) -> ServiceJob:
        appt = after.appointment
        log = after.log
        log_changed = log is not None and log != before.log
        # Every log write bumps the appointment version: a log edit whose
        # appointment changed since it was read is stale.
        if appt != before.appointment or log_changed:
            self._update_appointment(conn, appt, before.appointment.version)
            appt = replace(appt, version=before.appointment.version + 1)

        if log_changed:
            if before.log is None:
                log = replace(log, id=self.service_log_repo.create(conn, log), version=0)
            elif self.service_log_repo.update(conn, log, expected_version=before.log.version):
                log = replace(log, version=before.log.version + 1)
            else:
                self._stale("Service log", appt.id)
        return ServiceJob(appointment=appt, log=log)

    def _update_appointment(self, conn: Connection, appt: Appointment, expected_version: int) -> None:
        if not self.appointment_repo.update(conn, appt, expected_version=expected_version):
            self._stale("Appointment", appt.id)

    def _check_version(self, entity: str, expected: Optional[int], actual: int) -> None:
        if expected is not None:
            self._enforce(guard.check_version(entity, expected, actual), f"{entity.lower()} write")

    def _stale(self, entity: str, appointment_id: int) -> None:
        failure = Failure(STALE_STATE, f"{entity} of appointment #{appointment_id} changed concurrently. Reload and retry.")
        logger.warning("Rejected write: %s", failure.message)
        raise RuleViolation(failure)

    def _enforce(self, result: Result[T], action: str) -> T:
        if isinstance(result, Failure):
            logger.warning("Rejected %s [%s]: %s", action, result.kind, result.message)
            raise RuleViolation(result)
        return result.value


def build_service(business: BusinessConfig) -> WorkshopService:
    return WorkshopService(
        appointment_repo=AppointmentRepository(),
        service_log_repo=ServiceLogRepository(),
        service_repo=ServiceCatalogRepository(),
        part_repo=SparePartRepository(),
        settings_repo=SettingsRepository(),
        business=business,
    )
