from datetime import date, datetime, time

import pytest

from garagedesk.domain import (
    BusinessHours,
    ChecklistSnapshot,
    ChecklistTemplate,
    parse_calendar_date,
    parse_role,
    parse_status,
    parse_time_of_day,
)


@pytest.mark.parametrize(
    "label,expected",
    [
        ("Pendiente", "pending"),
        ("Confirmada", "confirmed"),
        ("En proceso", "in_progress"),
        ("En Proceso", "in_progress"),
        ("En Progreso", "in_progress"),
        ("Finalizada", "finalized"),
        ("Cancelada", "cancelled"),
        ("in_progress", "in_progress"),
        (" CANCELLED ", "cancelled"),
    ],
)
def test_parse_status_accepts_legacy_labels(label, expected):
    assert parse_status(label) == expected


def test_parse_status_rejects_unknown():
    with pytest.raises(ValueError):
        parse_status("Archivada")


def test_parse_role():
    assert parse_role("Technician") == "technician"
    with pytest.raises(ValueError):
        parse_role("mechanic")


def test_calendar_date_ignores_time_and_offset():
    assert parse_calendar_date("2024-03-04") == date(2024, 3, 4)
    assert parse_calendar_date("2024-03-04T23:30:00-06:00") == date(2024, 3, 4)
    assert parse_calendar_date("2024-03-04T00:00:00.000Z") == date(2024, 3, 4)
    assert parse_calendar_date(datetime(2024, 3, 4, 23, 59)) == date(2024, 3, 4)


def test_time_of_day_parsing():
    assert parse_time_of_day("08:30") == time(8, 30)
    assert parse_time_of_day("08:30:00") == time(8, 30)
    with pytest.raises(ValueError):
        parse_time_of_day("0830")


def test_business_hours_round_trip_and_validation():
    hours = BusinessHours.from_dict({"start": "08:00", "end": "17:00", "working_days": [6, 1, 2]})

    assert hours.to_dict() == {"start": "08:00", "end": "17:00", "working_days": [1, 2, 6]}
    with pytest.raises(ValueError):
        BusinessHours(start=time(8), end=time(17), working_days=frozenset({7}))


def test_snapshot_is_detached_from_template():
    template = ChecklistTemplate(("oil", "brakes"))
    snapshot = template.snapshot()

    assert snapshot.as_dict() == {"oil": False, "brakes": False}
    assert isinstance(snapshot, ChecklistSnapshot)
    assert not isinstance(snapshot, ChecklistTemplate)


def test_snapshot_keeps_step_order():
    snapshot = ChecklistSnapshot.from_mapping([("z", False), ("a", True), ("m", False)])

    assert snapshot.steps == ("z", "a", "m")
    assert snapshot.all_done().as_dict() == {"z": True, "a": True, "m": True}
    assert snapshot.is_done("a")
