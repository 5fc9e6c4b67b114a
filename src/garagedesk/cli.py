from __future__ import annotations

from datetime import date

from .db import Db, DbError
from .domain import (
    Actor,
    BusinessHours,
    format_time,
    parse_calendar_date,
    parse_role,
    parse_status,
    parse_time_of_day,
)
from .importers import DataImportError, import_parts_json, import_services_json
from .reports import appointment_stats, checklist_progress, service_log_summary, split_board
from .results import RuleViolation
from .services.workshop_service import (
    AccessDenied,
    BookAppointmentInput,
    PartLineInput,
    ValidationError,
    WorkshopService,
)

_DAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")


def _prompt(msg: str) -> str:
    return input(msg).strip()


def _print_job(job) -> None:
    a = job.appointment
    print(f"Appointment #{a.id} status={a.status} version={a.version}")
    if job.log is None:
        print("  (no service log yet)")
        return
    done, total, percent = checklist_progress(job.log.checklist)
    print(f"  checklist {done}/{total} ({percent}%) log_version={job.log.version}")
    for step, is_done in job.log.checklist.items:
        print(f"    [{'x' if is_done else ' '}] {step}")
    for p in job.log.parts_used:
        print(f"    part #{p.part_id} x{p.quantity} @ {p.unit_cost}")
    print(f"  final cost={job.log.final_cost} completed_at={job.log.completed_at}")


def run_cli(db: Db, service: WorkshopService) -> None:
    while True:
        try:
            actor = Actor(
                role=parse_role(_prompt("act as (client/receptionist/administrator/technician): ")),
                user_id=int(_prompt("user id: ")),
            )
            break
        except ValueError as e:
            print(f"[INPUT ERROR] {e}")

    while True:
        print("\n=== GarageDesk CLI ===")
        print("1) Business hours and time slots")
        print("2) Set business hours")
        print("3) Appointment board")
        print("4) Book appointment")
        print("5) Change appointment status")
        print("6) Reschedule appointment")
        print("7) Open service log")
        print("8) Toggle checklist step")
        print("9) Set parts used")
        print("10) Finalize service")
        print("11) Service log summary")
        print("12) Import services / parts JSON")
        print("13) Service history")
        print("0) Exit")

        choice = _prompt("> ")
        try:
            if choice == "0":
                return

            elif choice == "1":
                with db.session() as conn:
                    hours = service.business_hours(conn)
                    slots = service.time_slots(conn)
                days = ", ".join(_DAY_NAMES[d] for d in sorted(hours.working_days))
                print(f"{format_time(hours.start)}-{format_time(hours.end)} on {days}")
                print("Slots: " + " ".join(format_time(s) for s in slots))

            elif choice == "2":
                start = parse_time_of_day(_prompt("opens (HH:MM): "))
                end = parse_time_of_day(_prompt("closes (HH:MM): "))
                days = frozenset(int(d) for d in _prompt("working days, 0=Sun (e.g. 1,2,3,4,5,6): ").split(","))
                with db.transaction() as conn:
                    service.update_business_hours(conn, actor, BusinessHours(start, end, days))
                print("Business hours saved.")

            elif choice == "3":
                with db.session() as conn:
                    appts = service.list_appointments(conn, limit=200)
                today = date.today()
                stats = appointment_stats(appts, today)
                print(
                    f"today={stats.today} upcoming={stats.upcoming} "
                    f"in_progress={stats.in_progress} completed={stats.completed}"
                )
                upcoming, _history = split_board(appts, today)
                for a in upcoming:
                    print(
                        f"#{a.id} {a.scheduled_date.isoformat()} {format_time(a.scheduled_time)} "
                        f"vehicle={a.vehicle_id} client={a.client_id} tech={a.technician_id} {a.status}"
                    )

            elif choice == "4":
                client_id = actor.user_id if actor.role == "client" else int(_prompt("client_id: "))
                data = BookAppointmentInput(
                    client_id=client_id,
                    vehicle_id=int(_prompt("vehicle_id: ")),
                    service_id=int(_prompt("service_id: ")),
                    scheduled_date=parse_calendar_date(_prompt("date (YYYY-MM-DD): ")),
                    scheduled_time=parse_time_of_day(_prompt("time (HH:MM): ")),
                    technician_id=int(_prompt("technician_id (optional): ") or 0) or None,
                    notes=_prompt("notes (optional): "),
                )
                with db.transaction() as conn:
                    appointment_id = service.book_appointment(conn, actor, data)
                print(f"Booked appointment_id={appointment_id}")

            elif choice == "5":
                appointment_id = int(_prompt("appointment_id: "))
                target = parse_status(_prompt("new status (pending/confirmed/in_progress/finalized/cancelled): "))
                with db.transaction() as conn:
                    job = service.change_status(conn, actor, appointment_id, target)
                print(f"Appointment #{appointment_id} is now {job.appointment.status}")

            elif choice == "6":
                appointment_id = int(_prompt("appointment_id: "))
                new_date = parse_calendar_date(_prompt("new date (YYYY-MM-DD): "))
                new_time = parse_time_of_day(_prompt("new time (HH:MM): "))
                with db.transaction() as conn:
                    service.reschedule(conn, actor, appointment_id, scheduled_date=new_date, scheduled_time=new_time)
                print("Rescheduled.")

            elif choice == "7":
                appointment_id = int(_prompt("appointment_id: "))
                with db.transaction() as conn:
                    job = service.open_service_log(conn, actor, appointment_id)
                _print_job(job)

            elif choice == "8":
                appointment_id = int(_prompt("appointment_id: "))
                step = _prompt("step: ")
                with db.transaction() as conn:
                    job = service.toggle_step(conn, actor, appointment_id, step)
                _print_job(job)

            elif choice == "9":
                appointment_id = int(_prompt("appointment_id: "))
                parts: list[PartLineInput] = []
                while True:
                    add = _prompt("Add part? (y/n): ").lower()
                    if add != "y":
                        break
                    parts.append(
                        PartLineInput(part_id=int(_prompt("  part_id: ")), quantity=int(_prompt("  quantity: ")))
                    )
                with db.transaction() as conn:
                    job = service.set_parts(conn, actor, appointment_id, parts)
                _print_job(job)

            elif choice == "10":
                appointment_id = int(_prompt("appointment_id: "))
                if _prompt("Finalizing marks every checklist step done and locks the log. Continue? (y/n): ").lower() != "y":
                    continue
                with db.transaction() as conn:
                    job = service.finalize_service(conn, actor, appointment_id)
                _print_job(job)

            elif choice == "11":
                with db.session() as conn:
                    jobs = service.list_jobs(conn)
                summary = service_log_summary(jobs)
                print(f"finalized={summary.finalized} in_progress={summary.in_progress} revenue={summary.revenue}")

            elif choice == "12":
                mode = _prompt("services or parts? ").lower()
                path = _prompt("path to JSON file: ")
                with db.transaction() as conn:
                    if mode == "services":
                        n = import_services_json(conn, path, service.service_repo)
                    else:
                        n = import_parts_json(conn, path, service.part_repo)
                print(f"Imported: {n}")

            elif choice == "13":
                if actor.role == "client":
                    client_id = actor.user_id
                else:
                    client_id = int(_prompt("client_id (blank to search by vehicle): ") or 0) or None
                vehicle_id = None if client_id else int(_prompt("vehicle_id: "))
                with db.session() as conn:
                    appts = service.service_history(conn, actor, client_id=client_id, vehicle_id=vehicle_id)
                if not appts:
                    print("No closed appointments.")
                for a in appts:
                    print(
                        f"#{a.id} {a.scheduled_date.isoformat()} {format_time(a.scheduled_time)} "
                        f"vehicle={a.vehicle_id} service={a.service_id} {a.status}"
                    )

            else:
                print("Unknown choice.")

        except RuleViolation as e:
            print(f"[RULE] {e.kind}: {e}")
        except AccessDenied as e:
            print(f"[DENIED] {e}")
        except (ValidationError, DataImportError) as e:
            print(f"[INPUT ERROR] {e}")
        except DbError as e:
            print(f"[DB ERROR] {e}")
        except ValueError as e:
            print(f"[VALUE ERROR] {e}")
        except Exception as e:
            print(f"[ERROR] {type(e).__name__}: {e}")
