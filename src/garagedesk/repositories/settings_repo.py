from __future__ import annotations

from psycopg import Connection
from psycopg.types.json import Jsonb

from ..domain import BusinessHours

BUSINESS_HOURS_KEY = "business_hours"


class SettingsRepository:
    def get_business_hours(self, conn: Connection) -> BusinessHours | None:
        cur = conn.execute("SELECT value FROM setting WHERE key = %s;", (BUSINESS_HOURS_KEY,))
        row = cur.fetchone()
        if not row:
            return None
        value = dict(row["value"])
        # The first front end stored the weekdays under "days".
        if "working_days" not in value and "days" in value:
            value["working_days"] = value.pop("days")
        return BusinessHours.from_dict(value)

    def save_business_hours(self, conn: Connection, hours: BusinessHours) -> None:
        conn.execute(
            """
            INSERT INTO setting(key, value) VALUES (%s, %s)
            ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value, updated_at = now();
            """,
            (BUSINESS_HOURS_KEY, Jsonb(hours.to_dict())),
        )
