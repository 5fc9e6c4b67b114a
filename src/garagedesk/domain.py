from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, time
from decimal import Decimal
from typing import Iterable, Literal, Optional

AppointmentStatus = Literal["pending", "confirmed", "in_progress", "finalized", "cancelled"]
Role = Literal["client", "receptionist", "administrator", "technician"]

PENDING: AppointmentStatus = "pending"
CONFIRMED: AppointmentStatus = "confirmed"
IN_PROGRESS: AppointmentStatus = "in_progress"
FINALIZED: AppointmentStatus = "finalized"
CANCELLED: AppointmentStatus = "cancelled"

STATUSES: tuple[AppointmentStatus, ...] = (PENDING, CONFIRMED, IN_PROGRESS, FINALIZED, CANCELLED)
ACTIVE_STATUSES = frozenset({PENDING, CONFIRMED, IN_PROGRESS})
TERMINAL_STATUSES = frozenset({FINALIZED, CANCELLED})

ROLES: tuple[Role, ...] = ("client", "receptionist", "administrator", "technician")
STAFF_ROLES = frozenset({"receptionist", "administrator"})

# Labels written by the old front desk, spelling varied between screens.
_LEGACY_STATUS_LABELS: dict[str, AppointmentStatus] = {
    "pendiente": PENDING,
    "confirmada": CONFIRMED,
    "en proceso": IN_PROGRESS,
    "en progreso": IN_PROGRESS,
    "finalizada": FINALIZED,
    "cancelada": CANCELLED,
}


def parse_status(value: str) -> AppointmentStatus:
    key = value.strip().lower()
    if key in STATUSES:
        return key  # type: ignore[return-value]
    try:
        return _LEGACY_STATUS_LABELS[key]
    except KeyError:
        raise ValueError(f"Unknown appointment status: {value!r}") from None


def parse_role(value: str) -> Role:
    key = value.strip().lower()
    if key not in ROLES:
        raise ValueError(f"Unknown role: {value!r}")
    return key  # type: ignore[return-value]


def parse_calendar_date(value: str | date) -> date:
    """Read a calendar day, ignoring any time or offset part.

    ``2024-03-04T23:30:00-06:00`` is the 4th of March: the day is taken as
    written, never converted through UTC.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    day_part = value.strip().split("T")[0].split(" ")[0]
    return date.fromisoformat(day_part)


def parse_time_of_day(value: str | time) -> time:
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Expected HH:MM, got {value!r}")
    return time(int(parts[0]), int(parts[1]))


def format_time(value: time) -> str:
    return value.strftime("%H:%M")


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class Actor:
    role: Role
    user_id: int

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


@dataclass(frozen=True)
class BusinessHours:
    start: time
    end: time
    working_days: frozenset[int]

    def __post_init__(self) -> None:
        bad = [d for d in self.working_days if not 0 <= d <= 6]
        if bad:
            raise ValueError(f"Weekday indices must be 0..6 (0=Sunday), got {sorted(bad)}")

    @classmethod
    def from_dict(cls, data: dict) -> "BusinessHours":
        return cls(
            start=parse_time_of_day(data["start"]),
            end=parse_time_of_day(data["end"]),
            working_days=frozenset(int(d) for d in data["working_days"]),
        )

    def to_dict(self) -> dict:
        return {
            "start": format_time(self.start),
            "end": format_time(self.end),
            "working_days": sorted(self.working_days),
        }


@dataclass(frozen=True)
class Appointment:
    id: int
    client_id: int
    vehicle_id: int
    service_id: int
    scheduled_date: date
    scheduled_time: time
    status: AppointmentStatus = PENDING
    technician_id: Optional[int] = None
    notes: str = ""
    version: int = 0

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def with_status(self, status: AppointmentStatus) -> "Appointment":
        return replace(self, status=status)


@dataclass(frozen=True)
class ChecklistTemplate:
    """Ordered verification steps of a catalog service. Edited by the catalog owner."""

    steps: tuple[str, ...] = ()

    def snapshot(self) -> "ChecklistSnapshot":
        return ChecklistSnapshot(tuple((step, False) for step in self.steps))


@dataclass(frozen=True)
class ChecklistSnapshot:
    """Checklist copied into a service log.

    Once a log exists its steps are fixed: later edits of the catalog
    template never reach it.
    """

    items: tuple[tuple[str, bool], ...] = ()

    @classmethod
    def from_mapping(cls, mapping: dict[str, bool] | Iterable[tuple[str, bool]]) -> "ChecklistSnapshot":
        pairs = mapping.items() if isinstance(mapping, dict) else mapping
        return cls(tuple((str(step), bool(done)) for step, done in pairs))

    @property
    def steps(self) -> tuple[str, ...]:
        return tuple(step for step, _ in self.items)

    def __contains__(self, step: object) -> bool:
        return step in self.steps

    def is_done(self, step: str) -> bool:
        return dict(self.items)[step]

    def toggled(self, step: str) -> "ChecklistSnapshot":
        if step not in self:
            raise KeyError(step)
        return ChecklistSnapshot(tuple((s, (not done) if s == step else done) for s, done in self.items))

    def all_done(self) -> "ChecklistSnapshot":
        return ChecklistSnapshot(tuple((s, True) for s, _ in self.items))

    def as_dict(self) -> dict[str, bool]:
        return dict(self.items)


@dataclass(frozen=True)
class ServiceCatalogEntry:
    id: int
    name: str
    base_cost: Decimal
    checklist_template: ChecklistTemplate = field(default_factory=ChecklistTemplate)
    duration_minutes: int = 60


@dataclass(frozen=True)
class SparePart:
    id: int
    sku: str
    name: str
    unit_cost: Decimal
    stock_qty: int = 0


@dataclass(frozen=True)
class PartUsage:
    part_id: int
    quantity: int
    unit_cost: Decimal

    @property
    def subtotal(self) -> Decimal:
        return self.unit_cost * self.quantity


@dataclass(frozen=True)
class ServiceLog:
    appointment_id: int
    checklist: ChecklistSnapshot
    base_cost: Decimal
    final_cost: Decimal
    parts_used: tuple[PartUsage, ...] = ()
    observations: str = ""
    completed_at: Optional[datetime] = None
    id: Optional[int] = None
    version: int = 0

    @property
    def is_finalized(self) -> bool:
        return self.completed_at is not None
