from __future__ import annotations

from datetime import date, time

import pytest

from fakes import (
    FakeAppointmentRepository,
    FakeDb,
    FakeServiceCatalogRepository,
    FakeServiceLogRepository,
    FakeSettingsRepository,
    FakeSparePartRepository,
)
from garagedesk.config import BusinessConfig
from garagedesk.domain import Actor, Appointment, BusinessHours
from garagedesk.services.workshop_service import WorkshopService

MONDAY = date(2024, 3, 4)
SUNDAY = date(2024, 3, 3)
TODAY = date(2024, 3, 1)


@pytest.fixture
def hours() -> BusinessHours:
    return BusinessHours(start=time(8, 0), end=time(17, 0), working_days=frozenset({1, 2, 3, 4, 5, 6}))


@pytest.fixture
def admin() -> Actor:
    return Actor(role="administrator", user_id=1)


@pytest.fixture
def receptionist() -> Actor:
    return Actor(role="receptionist", user_id=2)


@pytest.fixture
def technician() -> Actor:
    return Actor(role="technician", user_id=7)


@pytest.fixture
def client() -> Actor:
    return Actor(role="client", user_id=100)


@pytest.fixture
def make_appointment():
    def _make(**overrides) -> Appointment:
        fields = dict(
            id=1,
            client_id=100,
            vehicle_id=500,
            service_id=1,
            scheduled_date=MONDAY,
            scheduled_time=time(9, 0),
            technician_id=7,
        )
        fields.update(overrides)
        return Appointment(**fields)

    return _make


@pytest.fixture
def repos():
    services = FakeServiceCatalogRepository()
    services.add(1, "Oil change", "50", ["oil", "brakes"])
    services.add(2, "Inspection", "0", [])
    parts = FakeSparePartRepository()
    parts.add(1, "P1", "Oil filter", "10")
    parts.add(2, "P2", "Brake pad", "25.50")
    return {
        "appointment_repo": FakeAppointmentRepository(),
        "service_log_repo": FakeServiceLogRepository(),
        "service_repo": services,
        "part_repo": parts,
        "settings_repo": FakeSettingsRepository(),
    }


@pytest.fixture
def service(repos) -> WorkshopService:
    return WorkshopService(business=BusinessConfig(), today=lambda: TODAY, **repos)


@pytest.fixture
def db() -> FakeDb:
    return FakeDb()
