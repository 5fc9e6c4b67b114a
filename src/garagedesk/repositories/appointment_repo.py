from __future__ import annotations

from datetime import date, time

from psycopg import Connection

from ..domain import Appointment

# First key of the two-key advisory lock taken while booking for a vehicle.
VEHICLE_LOCK_NAMESPACE = 4201

_COLUMNS = """
    id, client_id, vehicle_id, service_id, technician_id,
    scheduled_date, scheduled_time, status, notes, version
"""


def _to_appointment(row: dict) -> Appointment:
    return Appointment(
        id=int(row["id"]),
        client_id=int(row["client_id"]),
        vehicle_id=int(row["vehicle_id"]),
        service_id=int(row["service_id"]),
        technician_id=row["technician_id"],
        scheduled_date=row["scheduled_date"],
        scheduled_time=row["scheduled_time"],
        status=row["status"],
        notes=row["notes"] or "",
        version=int(row["version"]),
    )


class AppointmentRepository:
    def create(
        self,
        conn: Connection,
        *,
        client_id: int,
        vehicle_id: int,
        service_id: int,
        technician_id: int | None,
        scheduled_date: date,
        scheduled_time: time,
        notes: str,
    ) -> int:
        cur = conn.execute(
            """
            INSERT INTO appointment(client_id, vehicle_id, service_id, technician_id,
                                    scheduled_date, scheduled_time, notes)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING id;
            """,
            (client_id, vehicle_id, service_id, technician_id, scheduled_date, scheduled_time, notes),
        )
        return int(cur.fetchone()["id"])

    def get(self, conn: Connection, appointment_id: int) -> Appointment | None:
        cur = conn.execute(f"SELECT {_COLUMNS} FROM appointment WHERE id = %s;", (appointment_id,))
        row = cur.fetchone()
        return _to_appointment(row) if row else None

    def list(self, conn: Connection, limit: int = 100) -> list[Appointment]:
        cur = conn.execute(
            f"SELECT {_COLUMNS} FROM appointment ORDER BY scheduled_date DESC, scheduled_time DESC LIMIT %s;",
            (limit,),
        )
        return [_to_appointment(r) for r in cur.fetchall()]

    def list_for_vehicle(self, conn: Connection, vehicle_id: int) -> list[Appointment]:
        cur = conn.execute(
            f"SELECT {_COLUMNS} FROM appointment WHERE vehicle_id = %s ORDER BY id;",
            (vehicle_id,),
        )
        return [_to_appointment(r) for r in cur.fetchall()]

    def list_for_client(self, conn: Connection, client_id: int) -> list[Appointment]:
        cur = conn.execute(
            f"SELECT {_COLUMNS} FROM appointment WHERE client_id = %s ORDER BY id;",
            (client_id,),
        )
        return [_to_appointment(r) for r in cur.fetchall()]

    def lock_vehicle(self, conn: Connection, vehicle_id: int) -> None:
        # Released at commit/rollback; serializes check-then-insert per vehicle.
        conn.execute("SELECT pg_advisory_xact_lock(%s, %s);", (VEHICLE_LOCK_NAMESPACE, vehicle_id))

    def update(self, conn: Connection, appointment: Appointment, *, expected_version: int) -> bool:
        cur = conn.execute(
            """
            UPDATE appointment
            SET technician_id = %s, scheduled_date = %s, scheduled_time = %s,
                status = %s, notes = %s, version = version + 1
            WHERE id = %s AND version = %s;
            """,
            (
                appointment.technician_id,
                appointment.scheduled_date,
                appointment.scheduled_time,
                appointment.status,
                appointment.notes,
                appointment.id,
                expected_version,
            ),
        )
        return cur.rowcount == 1

    def delete(self, conn: Connection, appointment_id: int, *, expected_version: int) -> bool:
        cur = conn.execute(
            "DELETE FROM appointment WHERE id = %s AND version = %s;",
            (appointment_id, expected_version),
        )
        return cur.rowcount == 1
