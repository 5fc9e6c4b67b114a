from datetime import time

import pytest

from conftest import MONDAY, SUNDAY
from garagedesk.results import RuleViolation, unwrap
from garagedesk.rules.guard import admit, can_create, check_version, validate_slot


def test_sunday_is_rejected(hours):
    result = validate_slot(SUNDAY, time(9, 0), hours)

    assert not result.ok
    assert result.kind == "non_working_day"


def test_monday_opening_slot_is_accepted(hours):
    assert validate_slot(MONDAY, time(8, 0), hours).ok


def test_quarter_past_is_not_a_slot(hours):
    result = validate_slot(MONDAY, time(8, 15), hours)

    assert not result.ok
    assert result.kind == "outside_business_hours"


def test_closing_time_is_not_bookable(hours):
    assert validate_slot(MONDAY, time(17, 0), hours).kind == "outside_business_hours"
    assert validate_slot(MONDAY, time(16, 30), hours).ok


def test_active_appointment_blocks_same_vehicle(make_appointment):
    existing = [make_appointment(id=1, vehicle_id=500, status="pending")]

    result = can_create(500, existing)

    assert not result.ok
    assert result.kind == "active_appointment_conflict"


def test_other_vehicles_and_closed_appointments_do_not_block(make_appointment):
    existing = [
        make_appointment(id=1, vehicle_id=501, status="in_progress"),
        make_appointment(id=2, vehicle_id=500, status="cancelled"),
        make_appointment(id=3, vehicle_id=500, status="finalized"),
    ]

    assert can_create(500, existing).ok


def test_cancelling_frees_the_vehicle(make_appointment):
    pending = make_appointment(id=1, vehicle_id=500, status="pending")

    assert not can_create(500, [pending]).ok
    assert can_create(500, [pending.with_status("cancelled")]).ok


def test_guarded_creations_keep_one_active_per_vehicle(make_appointment, hours):
    booked = []
    for i, vehicle in enumerate([500, 500, 501, 500, 501, 502]):
        if admit(vehicle, MONDAY, time(9, 0), hours, booked).ok:
            booked.append(make_appointment(id=i + 1, vehicle_id=vehicle))

    active_per_vehicle = {}
    for a in booked:
        active_per_vehicle[a.vehicle_id] = active_per_vehicle.get(a.vehicle_id, 0) + 1
    assert active_per_vehicle == {500: 1, 501: 1, 502: 1}


def test_admit_checks_slot_before_conflict(make_appointment, hours):
    existing = [make_appointment(vehicle_id=500)]

    assert admit(500, SUNDAY, time(9, 0), hours, existing).kind == "non_working_day"


def test_version_mismatch_is_stale():
    assert check_version("Appointment", 3, 3).ok
    assert check_version("Appointment", 2, 3).kind == "stale_state"


def test_unwrap_raises_on_failure(hours):
    assert unwrap(validate_slot(MONDAY, time(9, 0), hours)) is None

    with pytest.raises(RuleViolation) as err:
        unwrap(validate_slot(SUNDAY, time(9, 0), hours))
    assert err.value.kind == "non_working_day"
    assert "not a working day" in str(err.value)
