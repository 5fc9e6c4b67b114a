from __future__ import annotations

from typing import Iterable

from psycopg import Connection
from psycopg.types.json import Jsonb

from ..domain import ChecklistSnapshot, PartUsage, ServiceLog


def _checklist_json(checklist: ChecklistSnapshot) -> Jsonb:
    return Jsonb([{"step": step, "done": done} for step, done in checklist.items])


def _checklist_from_json(value) -> ChecklistSnapshot:
    # Older rows stored a plain {"step": done} object.
    if isinstance(value, dict):
        return ChecklistSnapshot.from_mapping(value)
    return ChecklistSnapshot.from_mapping((item["step"], item["done"]) for item in value or [])


class ServiceLogRepository:
    def get_for_appointment(self, conn: Connection, appointment_id: int) -> ServiceLog | None:
        cur = conn.execute(
            """
            SELECT id, appointment_id, checklist, base_cost, final_cost, observations, completed_at, version
            FROM service_log WHERE appointment_id = %s;
            """,
            (appointment_id,),
        )
        row = cur.fetchone()
        if not row:
            return None
        return self._to_log(row, self._parts(conn, int(row["id"])))

    def list_for_appointments(self, conn: Connection, appointment_ids: Iterable[int]) -> dict[int, ServiceLog]:
        ids = sorted(set(appointment_ids))
        if not ids:
            return {}
        cur = conn.execute(
            """
            SELECT id, appointment_id, checklist, base_cost, final_cost, observations, completed_at, version
            FROM service_log WHERE appointment_id = ANY(%s);
            """,
            (ids,),
        )
        logs = [self._to_log(row, self._parts(conn, int(row["id"]))) for row in cur.fetchall()]
        return {log.appointment_id: log for log in logs}

    def create(self, conn: Connection, log: ServiceLog) -> int:
        cur = conn.execute(
            """
            INSERT INTO service_log(appointment_id, checklist, base_cost, final_cost, observations, completed_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING id;
            """,
            (
                log.appointment_id,
                _checklist_json(log.checklist),
                log.base_cost,
                log.final_cost,
                log.observations,
                log.completed_at,
            ),
        )
        log_id = int(cur.fetchone()["id"])
        self._write_parts(conn, log_id, log.parts_used)
        return log_id

    def update(self, conn: Connection, log: ServiceLog, *, expected_version: int) -> bool:
        cur = conn.execute(
            """
            UPDATE service_log
            SET checklist = %s, final_cost = %s, observations = %s, completed_at = %s, version = version + 1
            WHERE id = %s AND version = %s;
            """,
            (
                _checklist_json(log.checklist),
                log.final_cost,
                log.observations,
                log.completed_at,
                log.id,
                expected_version,
            ),
        )
        if cur.rowcount != 1:
            return False
        conn.execute("DELETE FROM service_log_part WHERE log_id = %s;", (log.id,))
        self._write_parts(conn, int(log.id), log.parts_used)
        return True

    def delete_for_appointment(self, conn: Connection, appointment_id: int) -> None:
        conn.execute("DELETE FROM service_log WHERE appointment_id = %s;", (appointment_id,))

    def _write_parts(self, conn: Connection, log_id: int, parts: tuple[PartUsage, ...]) -> None:
        for position, usage in enumerate(parts):
            conn.execute(
                """
                INSERT INTO service_log_part(log_id, part_id, position, quantity, unit_cost)
                VALUES (%s, %s, %s, %s, %s);
                """,
                (log_id, usage.part_id, position, usage.quantity, usage.unit_cost),
            )

    def _parts(self, conn: Connection, log_id: int) -> tuple[PartUsage, ...]:
        cur = conn.execute(
            "SELECT part_id, quantity, unit_cost FROM service_log_part WHERE log_id = %s ORDER BY position;",
            (log_id,),
        )
        return tuple(
            PartUsage(part_id=int(r["part_id"]), quantity=int(r["quantity"]), unit_cost=r["unit_cost"])
            for r in cur.fetchall()
        )

    def _to_log(self, row: dict, parts: tuple[PartUsage, ...]) -> ServiceLog:
        return ServiceLog(
            id=int(row["id"]),
            appointment_id=int(row["appointment_id"]),
            checklist=_checklist_from_json(row["checklist"]),
            base_cost=row["base_cost"],
            final_cost=row["final_cost"],
            parts_used=parts,
            observations=row["observations"] or "",
            completed_at=row["completed_at"],
            version=int(row["version"]),
        )
