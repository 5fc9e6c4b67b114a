import pytest

from garagedesk.domain import Actor
from garagedesk.rules.lifecycle import allowed_targets, can_delete, can_edit, transition


def test_client_cancels_own_pending(make_appointment, client):
    result = transition(make_appointment(status="pending"), client, "cancelled", has_service_log=False)

    assert result.ok
    assert result.value.status == "cancelled"


def test_client_cannot_cancel_confirmed(make_appointment, client):
    result = transition(make_appointment(status="confirmed"), client, "cancelled", has_service_log=False)

    assert not result.ok
    assert result.kind == "invalid_transition"


def test_client_cannot_cancel_someone_elses_booking(make_appointment):
    other = Actor(role="client", user_id=999)

    result = transition(make_appointment(status="pending"), other, "cancelled", has_service_log=False)

    assert result.kind == "invalid_transition"


def test_client_cannot_confirm(make_appointment, client):
    assert transition(make_appointment(), client, "confirmed", has_service_log=False).kind == "invalid_transition"


@pytest.mark.parametrize("target", ["confirmed", "in_progress", "cancelled"])
def test_staff_moves_pending_anywhere(make_appointment, receptionist, target):
    assert transition(make_appointment(status="pending"), receptionist, target, has_service_log=False).ok


@pytest.mark.parametrize("target", ["pending", "in_progress", "finalized", "cancelled"])
def test_staff_moves_confirmed_anywhere(make_appointment, admin, target):
    assert transition(make_appointment(status="confirmed"), admin, target, has_service_log=True).ok


def test_staff_cannot_send_in_progress_back(make_appointment, receptionist):
    appt = make_appointment(status="in_progress")

    assert transition(appt, receptionist, "pending", has_service_log=True).kind == "invalid_transition"
    assert transition(appt, receptionist, "confirmed", has_service_log=True).kind == "invalid_transition"


def test_assigned_technician_starts_and_finishes(make_appointment, technician):
    appt = make_appointment(status="confirmed", technician_id=technician.user_id)

    started = transition(appt, technician, "in_progress", has_service_log=False)
    finished = transition(started.value, technician, "finalized", has_service_log=True)

    assert started.value.status == "in_progress"
    assert finished.value.status == "finalized"


def test_unassigned_technician_cannot_start(make_appointment, technician):
    appt = make_appointment(status="pending", technician_id=8)

    assert transition(appt, technician, "in_progress", has_service_log=False).kind == "invalid_transition"


def test_technician_cannot_cancel(make_appointment, technician):
    assert transition(make_appointment(), technician, "cancelled", has_service_log=False).kind == "invalid_transition"


def test_finalizing_needs_a_service_log(make_appointment, admin):
    result = transition(make_appointment(status="in_progress"), admin, "finalized", has_service_log=False)

    assert result.kind == "invalid_transition"


@pytest.mark.parametrize("status", ["finalized", "cancelled"])
def test_terminal_states_are_final(make_appointment, admin, status):
    result = transition(make_appointment(status=status), admin, "pending", has_service_log=True)

    assert result.kind == "invalid_state"


def test_same_status_is_not_a_transition(make_appointment, admin):
    assert transition(make_appointment(status="confirmed"), admin, "confirmed", has_service_log=False).kind == "invalid_transition"


def test_transition_table_has_no_exits_from_terminal_states():
    for role in ("client", "receptionist", "administrator", "technician"):
        assert allowed_targets(role, "finalized") == frozenset()
        assert allowed_targets(role, "cancelled") == frozenset()


def test_only_staff_edits_and_deletes_open_appointments(make_appointment, receptionist, client):
    appt = make_appointment(status="confirmed")

    assert can_edit(appt, receptionist).ok
    assert can_delete(appt, receptionist).ok
    assert can_edit(appt, client).kind == "invalid_transition"
    assert can_delete(appt, client).kind == "invalid_transition"


def test_closed_appointments_cannot_be_deleted(make_appointment, admin):
    assert can_delete(make_appointment(status="finalized"), admin).kind == "invalid_state"
    assert can_delete(make_appointment(status="cancelled"), admin).kind == "invalid_state"
