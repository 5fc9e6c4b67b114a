import pytest

from garagedesk.web_app import create_app

RECEPTION = {"X-Actor-Role": "receptionist", "X-Actor-Id": "2"}
TECH = {"X-Actor-Role": "technician", "X-Actor-Id": "7"}
ADMIN = {"X-Actor-Role": "administrator", "X-Actor-Id": "1"}

BOOKING = {
    "client_id": 100,
    "vehicle_id": 500,
    "service_id": 1,
    "date": "2024-03-04T00:00:00.000Z",
    "time": "09:00",
    "technician_id": 7,
}


@pytest.fixture
def http(db, service):
    app = create_app(db, service)
    app.config["TESTING"] = True
    return app.test_client()


def _book(http, **overrides):
    return http.post("/appointments", json={**BOOKING, **overrides}, headers=RECEPTION)


def test_book_and_fetch(http, db):
    resp = _book(http)

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["status"] == "pending"
    assert body["date"] == "2024-03-04"
    assert body["progress"][0] == {"label": "Requested", "reached": True}
    assert db.transactions == 1

    fetched = http.get(f"/appointments/{body['id']}").get_json()
    assert fetched["log"] is None
    assert fetched["appointment"]["id"] == body["id"]


def test_booking_rejections_map_to_status_codes(http):
    assert _book(http, time="08:15").status_code == 422
    assert _book(http, date="2024-03-03").status_code == 422
    assert _book(http).status_code == 201

    conflict = _book(http, time="10:00")
    assert conflict.status_code == 409
    assert conflict.get_json()["error"] == "active_appointment_conflict"


def test_missing_headers_and_fields(http):
    assert http.post("/appointments", json=BOOKING).status_code == 403
    assert http.post("/appointments", json={"client_id": 100}, headers=RECEPTION).status_code == 400
    assert http.post("/appointments", data="nope", headers=RECEPTION).status_code == 400
    assert http.get("/appointments/99").status_code == 404


def test_legacy_status_labels_are_accepted(http):
    appointment_id = _book(http).get_json()["id"]

    resp = http.put(f"/appointments/{appointment_id}/status", json={"status": "Confirmada"}, headers=RECEPTION)

    assert resp.status_code == 200
    assert resp.get_json()["appointment"]["status"] == "confirmed"


def test_stale_version_is_conflict(http):
    appointment_id = _book(http).get_json()["id"]
    http.put(f"/appointments/{appointment_id}/status", json={"status": "confirmed", "version": 0}, headers=RECEPTION)

    resp = http.put(
        f"/appointments/{appointment_id}/status", json={"status": "cancelled", "version": 0}, headers=RECEPTION
    )

    assert resp.status_code == 409
    assert resp.get_json()["error"] == "stale_state"


def test_service_log_flow(http):
    appointment_id = _book(http).get_json()["id"]
    base = f"/appointments/{appointment_id}"
    http.put(f"{base}/status", json={"status": "in_progress"}, headers=TECH)

    opened = http.post(f"{base}/service-log", headers=TECH).get_json()
    assert opened["log"]["progress"] == {"done": 0, "total": 2, "percent": 0}

    toggled = http.post(f"{base}/service-log/toggle", json={"step": "oil"}, headers=TECH).get_json()
    assert toggled["log"]["progress"]["done"] == 1

    priced = http.put(
        f"{base}/service-log/parts", json={"parts": [{"part_id": 2, "quantity": 2}]}, headers=TECH
    ).get_json()
    assert priced["log"]["final_cost"] == "101.00"

    done = http.post(f"{base}/service-log/finalize", headers=TECH)
    assert done.status_code == 200
    assert done.get_json()["appointment"]["status"] == "finalized"

    again = http.post(f"{base}/service-log/toggle", json={"step": "oil"}, headers=TECH)
    assert again.status_code == 409
    assert again.get_json()["error"] == "invalid_state"

    report = http.get("/reports/service-logs").get_json()
    assert report["finalized"] == 1
    assert report["revenue"] == "101.00"


def test_bad_parts_payload(http):
    appointment_id = _book(http).get_json()["id"]

    resp = http.put(f"/appointments/{appointment_id}/service-log/parts", json={"parts": "lots"}, headers=RECEPTION)

    assert resp.status_code == 400


def test_business_hours_settings(http):
    new_hours = {"start": "09:00", "end": "11:00", "working_days": [1, 2, 3]}

    assert http.put("/settings/business-hours", json=new_hours, headers=RECEPTION).status_code == 403
    assert http.put("/settings/business-hours", json={"start": "09:00"}, headers=ADMIN).status_code == 400
    assert http.put("/settings/business-hours", json=new_hours, headers=ADMIN).status_code == 200

    assert http.get("/settings/business-hours").get_json() == new_hours
    assert http.get("/time-slots").get_json() == ["09:00", "09:30", "10:00", "10:30"]


def test_board_and_delete(http):
    appointment_id = _book(http).get_json()["id"]

    board = http.get("/appointments?today=2024-03-04").get_json()
    assert [a["id"] for a in board["upcoming"]] == [appointment_id]
    assert board["stats"]["today"] == 1

    queue = http.get("/appointments?technician_id=7").get_json()
    assert [a["id"] for a in queue["appointments"]] == [appointment_id]

    assert http.delete(f"/appointments/{appointment_id}", headers=TECH).status_code == 409
    assert http.delete(f"/appointments/{appointment_id}?version=0", headers=ADMIN).status_code == 204
    assert http.get(f"/appointments/{appointment_id}").status_code == 404


def test_client_and_vehicle_history(http):
    appointment_id = _book(http).get_json()["id"]
    http.put(f"/appointments/{appointment_id}/status", json={"status": "cancelled"}, headers=RECEPTION)
    _book(http, time="11:00")
    own = {"X-Actor-Role": "client", "X-Actor-Id": "100"}

    history = http.get("/clients/100/history", headers=own)
    assert history.status_code == 200
    assert [a["id"] for a in history.get_json()["appointments"]] == [appointment_id]
    assert history.get_json()["appointments"][0]["status"] == "cancelled"

    by_vehicle = http.get("/vehicles/500/history", headers=RECEPTION).get_json()
    assert [a["id"] for a in by_vehicle["appointments"]] == [appointment_id]

    assert http.get("/clients/101/history", headers=own).status_code == 403
    assert http.get("/clients/100/history").status_code == 403
