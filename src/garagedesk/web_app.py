"""JSON API over the workshop service.

Authentication lives in front of this app: the caller passes the acting
user in the ``X-Actor-Role`` and ``X-Actor-Id`` headers.
"""

from __future__ import annotations

import logging
from datetime import date

from flask import Flask, g, jsonify, request

from .db import Db, DbError
from .domain import (
    Actor,
    Appointment,
    BusinessHours,
    format_time,
    parse_calendar_date,
    parse_role,
    parse_status,
    parse_time_of_day,
)
from .reports import (
    appointment_stats,
    checklist_progress,
    monthly_income,
    progress_steps,
    service_log_summary,
    split_board,
    technician_queue,
)
from .results import RuleViolation
from .rules.service_log import ServiceJob
from .services.workshop_service import (
    AccessDenied,
    BookAppointmentInput,
    NotFoundError,
    PartLineInput,
    ValidationError,
    WorkshopService,
)

logger = logging.getLogger(__name__)

# Failures of a booking request the caller can fix by picking another slot.
_SLOT_FAILURES = {"outside_business_hours", "non_working_day"}


def appointment_json(a: Appointment) -> dict:
    return {
        "id": a.id,
        "client_id": a.client_id,
        "vehicle_id": a.vehicle_id,
        "service_id": a.service_id,
        "technician_id": a.technician_id,
        "date": a.scheduled_date.isoformat(),
        "time": format_time(a.scheduled_time),
        "status": a.status,
        "notes": a.notes,
        "version": a.version,
        "progress": [{"label": label, "reached": reached} for label, reached in progress_steps(a.status)],
    }


def job_json(job: ServiceJob) -> dict:
    data = {"appointment": appointment_json(job.appointment), "log": None}
    log = job.log
    if log is not None:
        done, total, percent = checklist_progress(log.checklist)
        data["log"] = {
            "id": log.id,
            "checklist": [{"step": step, "done": is_done} for step, is_done in log.checklist.items],
            "progress": {"done": done, "total": total, "percent": percent},
            "parts_used": [
                {"part_id": p.part_id, "quantity": p.quantity, "unit_cost": str(p.unit_cost)}
                for p in log.parts_used
            ],
            "base_cost": str(log.base_cost),
            "final_cost": str(log.final_cost),
            "observations": log.observations,
            "completed_at": log.completed_at.isoformat() if log.completed_at else None,
            "version": log.version,
        }
    return data


def _body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data


def _expected_version() -> int | None:
    value = request.args.get("version")
    if value is None and request.is_json:
        value = (request.get_json(silent=True) or {}).get("version")
    return int(value) if value is not None else None


def create_app(db: Db, service: WorkshopService) -> Flask:
    app = Flask(__name__)

    @app.before_request
    def load_actor():
        role = request.headers.get("X-Actor-Role")
        user_id = request.headers.get("X-Actor-Id")
        g.actor = None
        if role and user_id:
            g.actor = Actor(role=parse_role(role), user_id=int(user_id))

    def actor() -> Actor:
        if g.actor is None:
            raise AccessDenied("X-Actor-Role and X-Actor-Id headers are required.")
        return g.actor

    @app.errorhandler(RuleViolation)
    def rule_violation(e: RuleViolation):
        status = 422 if e.kind in _SLOT_FAILURES else 409
        return jsonify(error=e.kind, message=str(e)), status

    @app.errorhandler(NotFoundError)
    def not_found(e: NotFoundError):
        return jsonify(error="not_found", message=str(e)), 404

    @app.errorhandler(ValidationError)
    def validation_error(e: ValidationError):
        return jsonify(error="validation", message=str(e)), 400

    @app.errorhandler(ValueError)
    def value_error(e: ValueError):
        return jsonify(error="validation", message=str(e)), 400

    @app.errorhandler(AccessDenied)
    def access_denied(e: AccessDenied):
        return jsonify(error="forbidden", message=str(e)), 403

    @app.errorhandler(DbError)
    def db_error(e: DbError):
        logger.error("Database unavailable: %s", e)
        return jsonify(error="database", message=str(e)), 503

    # -- settings ---------------------------------------------------------

    @app.get("/settings/business-hours")
    def get_business_hours():
        with db.session() as conn:
            hours = service.business_hours(conn)
        return jsonify(hours.to_dict())

    @app.put("/settings/business-hours")
    def put_business_hours():
        try:
            hours = BusinessHours.from_dict(_body())
        except KeyError as e:
            raise ValidationError(f"Missing field: {e}") from e
        with db.transaction() as conn:
            saved = service.update_business_hours(conn, actor(), hours)
        return jsonify(saved.to_dict())

    @app.get("/time-slots")
    def get_time_slots():
        with db.session() as conn:
            slots = service.time_slots(conn)
        return jsonify([format_time(s) for s in slots])

    # -- appointments -----------------------------------------------------

    @app.get("/appointments")
    def list_appointments():
        with db.session() as conn:
            appts = service.list_appointments(conn, limit=int(request.args.get("limit", 100)))
        today = parse_calendar_date(request.args["today"]) if "today" in request.args else date.today()
        if "technician_id" in request.args:
            appts = technician_queue(appts, int(request.args["technician_id"]))
            return jsonify(appointments=[appointment_json(a) for a in appts])
        upcoming, history = split_board(appts, today)
        stats = appointment_stats(appts, today)
        return jsonify(
            upcoming=[appointment_json(a) for a in upcoming],
            history=[appointment_json(a) for a in history],
            stats={
                "today": stats.today,
                "upcoming": stats.upcoming,
                "in_progress": stats.in_progress,
                "completed": stats.completed,
            },
        )

    @app.post("/appointments")
    def book_appointment():
        body = _body()
        try:
            data = BookAppointmentInput(
                client_id=int(body["client_id"]),
                vehicle_id=int(body["vehicle_id"]),
                service_id=int(body["service_id"]),
                scheduled_date=parse_calendar_date(body["date"]),
                scheduled_time=parse_time_of_day(body["time"]),
                technician_id=int(body["technician_id"]) if body.get("technician_id") else None,
                notes=str(body.get("notes") or ""),
            )
        except KeyError as e:
            raise ValidationError(f"Missing field: {e}") from e
        with db.transaction() as conn:
            appointment_id = service.book_appointment(conn, actor(), data)
            appt = service.get_appointment(conn, appointment_id)
        return jsonify(appointment_json(appt)), 201

    @app.get("/appointments/<int:appointment_id>")
    def get_appointment(appointment_id: int):
        with db.session() as conn:
            job = service.get_job(conn, appointment_id)
        return jsonify(job_json(job))

    @app.put("/appointments/<int:appointment_id>/status")
    def change_status(appointment_id: int):
        body = _body()
        if "status" not in body:
            raise ValidationError("Missing field: status")
        with db.transaction() as conn:
            job = service.change_status(
                conn,
                actor(),
                appointment_id,
                parse_status(str(body["status"])),
                expected_version=_expected_version(),
            )
        return jsonify(job_json(job))

    @app.put("/appointments/<int:appointment_id>/schedule")
    def reschedule(appointment_id: int):
        body = _body()
        try:
            new_date = parse_calendar_date(body["date"])
            new_time = parse_time_of_day(body["time"])
        except KeyError as e:
            raise ValidationError(f"Missing field: {e}") from e
        with db.transaction() as conn:
            appt = service.reschedule(
                conn,
                actor(),
                appointment_id,
                scheduled_date=new_date,
                scheduled_time=new_time,
                expected_version=_expected_version(),
            )
        return jsonify(appointment_json(appt))

    @app.put("/appointments/<int:appointment_id>/technician")
    def assign_technician(appointment_id: int):
        body = _body()
        technician_id = int(body["technician_id"]) if body.get("technician_id") else None
        with db.transaction() as conn:
            appt = service.assign_technician(
                conn, actor(), appointment_id, technician_id, expected_version=_expected_version()
            )
        return jsonify(appointment_json(appt))

    @app.delete("/appointments/<int:appointment_id>")
    def delete_appointment(appointment_id: int):
        with db.transaction() as conn:
            service.delete_appointment(conn, actor(), appointment_id, expected_version=_expected_version())
        return "", 204

    @app.get("/clients/<int:client_id>/history")
    def client_history(client_id: int):
        with db.session() as conn:
            appts = service.service_history(conn, actor(), client_id=client_id)
        return jsonify(appointments=[appointment_json(a) for a in appts])

    @app.get("/vehicles/<int:vehicle_id>/history")
    def vehicle_history(vehicle_id: int):
        with db.session() as conn:
            appts = service.service_history(conn, actor(), vehicle_id=vehicle_id)
        return jsonify(appointments=[appointment_json(a) for a in appts])

    # -- service log ------------------------------------------------------

    @app.post("/appointments/<int:appointment_id>/service-log")
    def open_service_log(appointment_id: int):
        with db.transaction() as conn:
            job = service.open_service_log(conn, actor(), appointment_id)
        return jsonify(job_json(job))

    @app.post("/appointments/<int:appointment_id>/service-log/toggle")
    def toggle_step(appointment_id: int):
        body = _body()
        with db.transaction() as conn:
            job = service.toggle_step(
                conn, actor(), appointment_id, str(body.get("step", "")), expected_version=_expected_version()
            )
        return jsonify(job_json(job))

    @app.put("/appointments/<int:appointment_id>/service-log/parts")
    def set_parts(appointment_id: int):
        body = _body()
        try:
            parts = [PartLineInput(part_id=int(p["part_id"]), quantity=int(p["quantity"])) for p in body["parts"]]
        except (KeyError, TypeError) as e:
            raise ValidationError("parts must be a list of {part_id, quantity}") from e
        with db.transaction() as conn:
            job = service.set_parts(conn, actor(), appointment_id, parts, expected_version=_expected_version())
        return jsonify(job_json(job))

    @app.put("/appointments/<int:appointment_id>/service-log/observations")
    def set_observations(appointment_id: int):
        body = _body()
        with db.transaction() as conn:
            job = service.set_observations(
                conn,
                actor(),
                appointment_id,
                str(body.get("observations", "")),
                expected_version=_expected_version(),
            )
        return jsonify(job_json(job))

    @app.post("/appointments/<int:appointment_id>/service-log/finalize")
    def finalize_service(appointment_id: int):
        with db.transaction() as conn:
            job = service.finalize_service(conn, actor(), appointment_id, expected_version=_expected_version())
        return jsonify(job_json(job))

    # -- reports ----------------------------------------------------------

    @app.get("/reports/service-logs")
    def service_log_report():
        with db.session() as conn:
            jobs = service.list_jobs(conn)
        summary = service_log_summary(jobs)
        return jsonify(
            finalized=summary.finalized,
            in_progress=summary.in_progress,
            revenue=str(summary.revenue),
            monthly_income={month: str(total) for month, total in monthly_income(jobs).items()},
        )

    return app
