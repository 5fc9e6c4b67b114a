from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from psycopg import Connection
from psycopg.types.json import Jsonb

from ..domain import ChecklistTemplate, ServiceCatalogEntry, SparePart


def _to_service(row: dict) -> ServiceCatalogEntry:
    return ServiceCatalogEntry(
        id=int(row["id"]),
        name=row["name"],
        base_cost=row["base_cost"],
        checklist_template=ChecklistTemplate(tuple(row["checklist"] or [])),
        duration_minutes=int(row["duration_minutes"]),
    )


def _to_part(row: dict) -> SparePart:
    return SparePart(
        id=int(row["id"]),
        sku=row["sku"],
        name=row["name"],
        unit_cost=row["unit_cost"],
        stock_qty=int(row["stock_qty"]),
    )


class ServiceCatalogRepository:
    def get(self, conn: Connection, service_id: int) -> ServiceCatalogEntry | None:
        cur = conn.execute(
            "SELECT id, name, base_cost, checklist, duration_minutes FROM service_catalog WHERE id = %s;",
            (service_id,),
        )
        row = cur.fetchone()
        return _to_service(row) if row else None

    def list(self, conn: Connection, limit: int = 200) -> list[ServiceCatalogEntry]:
        cur = conn.execute(
            "SELECT id, name, base_cost, checklist, duration_minutes FROM service_catalog ORDER BY name LIMIT %s;",
            (limit,),
        )
        return [_to_service(r) for r in cur.fetchall()]

    def upsert_by_name(
        self,
        conn: Connection,
        *,
        name: str,
        base_cost: Decimal,
        checklist: list[str],
        duration_minutes: int,
    ) -> int:
        # Only the template changes; logs already opened keep their own copy.
        cur = conn.execute(
            """
            INSERT INTO service_catalog(name, base_cost, checklist, duration_minutes)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (name) DO UPDATE SET
              base_cost = EXCLUDED.base_cost,
              checklist = EXCLUDED.checklist,
              duration_minutes = EXCLUDED.duration_minutes
            RETURNING id;
            """,
            (name, base_cost, Jsonb(checklist), duration_minutes),
        )
        return int(cur.fetchone()["id"])


class SparePartRepository:
    def get_many(self, conn: Connection, part_ids: Iterable[int]) -> dict[int, SparePart]:
        ids = sorted(set(part_ids))
        if not ids:
            return {}
        cur = conn.execute(
            """
            SELECT id, sku, name, unit_cost, stock_qty
            FROM spare_part WHERE id = ANY(%s) AND is_active;
            """,
            (ids,),
        )
        return {int(r["id"]): _to_part(r) for r in cur.fetchall()}

    def list(self, conn: Connection, limit: int = 100) -> list[SparePart]:
        cur = conn.execute(
            "SELECT id, sku, name, unit_cost, stock_qty FROM spare_part WHERE is_active ORDER BY name LIMIT %s;",
            (limit,),
        )
        return [_to_part(r) for r in cur.fetchall()]

    def upsert_by_sku(
        self,
        conn: Connection,
        *,
        sku: str,
        name: str,
        unit_cost: Decimal,
        stock_qty: int,
        is_active: bool = True,
    ) -> int:
        cur = conn.execute(
            """
            INSERT INTO spare_part(sku, name, unit_cost, stock_qty, is_active)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (sku) DO UPDATE SET
              name = EXCLUDED.name,
              unit_cost = EXCLUDED.unit_cost,
              stock_qty = EXCLUDED.stock_qty,
              is_active = EXCLUDED.is_active
            RETURNING id;
            """,
            (sku, name, unit_cost, stock_qty, is_active),
        )
        return int(cur.fetchone()["id"])
