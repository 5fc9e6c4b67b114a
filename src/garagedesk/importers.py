from __future__ import annotations

import json
import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path

from psycopg import Connection

from .repositories.catalog_repo import ServiceCatalogRepository, SparePartRepository

logger = logging.getLogger(__name__)


class DataImportError(Exception):
    pass


def _load_list(path: str | Path) -> list:
    p = Path(path)
    if not p.exists():
        raise DataImportError(f"File not found: {p}")
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise DataImportError(f"Invalid JSON: {e}") from e
    if not isinstance(data, list):
        raise DataImportError("JSON must be a list of objects")
    return data


def _money(value) -> Decimal:
    try:
        amount = Decimal(str(value))
    except InvalidOperation as e:
        raise DataImportError(f"Invalid amount: {value!r}") from e
    if amount < 0:
        raise DataImportError(f"Amount cannot be negative: {value!r}")
    return amount


def import_services_json(conn: Connection, path: str | Path, service_repo: ServiceCatalogRepository) -> int:
    """Load service catalog entries. Accepts the shop's old export field names too."""
    count = 0
    for obj in _load_list(path):
        if not isinstance(obj, dict):
            continue
        name = str(obj.get("name", obj.get("nombre", ""))).strip()
        if not name:
            continue
        checklist = obj.get("checklist", [])
        if not isinstance(checklist, list):
            raise DataImportError(f"Service {name!r}: checklist must be a list of step names")

        service_repo.upsert_by_name(
            conn,
            name=name,
            base_cost=_money(obj.get("base_cost", obj.get("costo", 0))),
            checklist=[str(step).strip() for step in checklist if str(step).strip()],
            duration_minutes=int(obj.get("duration_minutes", obj.get("duracion", 60))),
        )
        count += 1
    logger.info("Imported %s service(s) from %s", count, path)
    return count


def import_parts_json(conn: Connection, path: str | Path, part_repo: SparePartRepository) -> int:
    count = 0
    for obj in _load_list(path):
        if not isinstance(obj, dict):
            continue
        sku = str(obj.get("sku", "")).strip()
        name = str(obj.get("name", obj.get("nombre", ""))).strip()
        if not sku or not name:
            continue

        part_repo.upsert_by_sku(
            conn,
            sku=sku,
            name=name,
            unit_cost=_money(obj.get("unit_cost", obj.get("costo_unitario", 0))),
            stock_qty=int(obj.get("stock_qty", obj.get("stock", 0))),
            is_active=bool(obj.get("is_active", True)),
        )
        count += 1
    logger.info("Imported %s spare part(s) from %s", count, path)
    return count
