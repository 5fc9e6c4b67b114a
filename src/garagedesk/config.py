from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from datetime import time
from pathlib import Path

from .domain import BusinessHours


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DbConfig:
    host: str
    port: int
    name: str
    user: str
    password: str
    sslmode: str = "disable"


def _default_hours() -> BusinessHours:
    return BusinessHours(start=time(8, 0), end=time(17, 0), working_days=frozenset({1, 2, 3, 4, 5, 6}))


@dataclass(frozen=True)
class BusinessConfig:
    # Fallback until an administrator stores business hours in the settings table.
    default_hours: BusinessHours = field(default_factory=_default_hours)
    slot_minutes: int = 30


@dataclass(frozen=True)
class AppConfig:
    name: str
    log_level: str
    db: DbConfig
    business: BusinessConfig


def _business(section: dict) -> BusinessConfig:
    fallback = _default_hours()
    hours = BusinessHours.from_dict(
        {
            "start": section.get("start", "08:00"),
            "end": section.get("end", "17:00"),
            "working_days": section.get("working_days", sorted(fallback.working_days)),
        }
    )
    if hours.start >= hours.end:
        raise ConfigError("[business] start must be earlier than end")
    slot_minutes = int(section.get("slot_minutes", 30))
    if slot_minutes <= 0:
        raise ConfigError("[business] slot_minutes must be positive")
    return BusinessConfig(default_hours=hours, slot_minutes=slot_minutes)


def load_config(path: str | Path) -> AppConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {p.resolve()}")

    try:
        data = tomllib.loads(p.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Failed to read config TOML: {e}") from e

    try:
        app = data["app"]
        db = data["db"]
        return AppConfig(
            name=str(app.get("name", "GarageDesk")),
            log_level=str(app.get("log_level", "INFO")).upper(),
            db=DbConfig(
                host=str(db["host"]),
                port=int(db.get("port", 5432)),
                name=str(db["name"]),
                user=str(db["user"]),
                password=str(db["password"]),
                sslmode=str(db.get("sslmode", "disable")),
            ),
            business=_business(data.get("business", {})),
        )
    except ConfigError:
        raise
    except KeyError as e:
        raise ConfigError(f"Missing config key: {e}") from e
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid config values: {e}") from e
