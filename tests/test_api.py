import json

import pytest

from helpdesk.models import AppointmentStatus, UserCreate, UserRole
from helpdesk.services.audit_service import list_audit_logs
from helpdesk.services.auth_service import create_user
from helpdesk.services.staff_service import ENTITY_STAFF_AVAILABILITY

from tests.conftest import DAY

API = "/api/v1"


def _booking(service_id, start_time="10:00", **extra):
    body = {
        "service_id": service_id,
        "date": DAY.isoformat(),
        "start_time": start_time,
        "user_name": "Khun Dang",
        "user_phone": "0812345678",
        "description": "Printer jams on every page",
    }
    body.update(extra)
    return body


async def test_book_appointment(client, service):
    resp = await client.post(f"{API}/appointments", json=_booking(service.id))

    assert resp.status_code == 201
    data = resp.json()
    assert data["status"] == "PENDING"
    assert data["end_time"] == "10:30"
    assert data["service_name"] == "ฮาร์ดแวร์"
    assert data["staff_id"] is None

    history = await client.get(f"{API}/appointments/{data['id']}/history")
    assert history.json() == []


async def test_book_unknown_service(client):
    resp = await client.post(f"{API}/appointments", json=_booking("missing"))

    assert resp.status_code == 404
    assert resp.json() == {"detail": "Service not found", "code": "NOT_FOUND"}


async def test_slot_grid_marks_booked_slots(client, service, make_appointment):
    await make_appointment("10:00")
    await make_appointment("11:00", status=AppointmentStatus.CANCELLED)

    resp = await client.get(f"{API}/slots/available", params={"date": DAY.isoformat(), "service_id": service.id})

    assert resp.status_code == 200
    slots = {s["start_time"]: s for s in resp.json()["slots"]}
    assert len(slots) == 16
    assert slots["08:30"]["end_time"] == "09:00"
    assert slots["10:00"]["available"] is False
    assert slots["09:30"]["available"] is True
    assert slots["10:30"]["available"] is True
    assert slots["11:00"]["available"] is True
    assert "16:30" not in slots


async def test_list_services(client, service):
    resp = await client.get(f"{API}/services")

    assert [s["name"] for s in resp.json()] == ["Hardware"]


async def test_assign_and_history(client, staff, other_staff, make_appointment):
    appointment = await make_appointment("10:00")
    url = f"{API}/appointments/{appointment.id}"

    resp = await client.patch(url, json={"staff_id": staff.id, "performed_by": "admin-9", "performed_by_name": "Nok"})
    assert resp.status_code == 200
    assert resp.json()["staff_name"] == "Somchai"

    await client.patch(url, json={"staff_id": other_staff.id})

    history = (await client.get(f"{url}/history")).json()
    assert [h["action"] for h in history] == ["REASSIGNED", "ASSIGNED"]
    assert history[1]["performed_by_name"] == "Nok"
    assert history[0]["performed_by"] == "SYSTEM"
    assert history[0]["notes"] == "Reassigned from Somchai to Somying"


async def test_assign_conflict_returns_409_with_conflicts(client, staff, make_appointment):
    await make_appointment("10:00", staff_id=staff.id)
    appointment = await make_appointment("10:15")
    url = f"{API}/appointments/{appointment.id}"

    resp = await client.patch(url, json={"staff_id": staff.id})

    assert resp.status_code == 409
    body = resp.json()
    assert body["code"] == "CONFLICT"
    assert body["detail"] == "Somchai is not available at this time"
    assert body["conflicts"][0]["type"] == "double_booked"

    forced = await client.patch(url, json={"staff_id": staff.id, "force": True})
    assert forced.status_code == 200
    assert forced.json()["staff_id"] == staff.id


async def test_assign_errors(client, customer, make_appointment):
    appointment = await make_appointment("10:00")

    invalid = await client.patch(f"{API}/appointments/{appointment.id}", json={"staff_id": customer.id})
    missing = await client.patch(f"{API}/appointments/nope", json={"staff_id": customer.id})

    assert invalid.status_code == 400
    assert invalid.json()["code"] == "INVALID_STAFF"
    assert missing.status_code == 404


async def test_status_transitions(client, make_appointment):
    appointment = await make_appointment("10:00")
    url = f"{API}/appointments/{appointment.id}/status"

    ok = await client.patch(url, json={"status": "CONFIRMED"})
    backwards = await client.patch(url, json={"status": "PENDING"})
    bogus = await client.patch(url, json={"status": "ARCHIVED"})

    assert ok.status_code == 200
    assert ok.json()["status"] == "CONFIRMED"
    assert backwards.status_code == 400
    assert backwards.json()["code"] == "INVALID_TRANSITION"
    assert bogus.json()["code"] == "INVALID_REQUEST"

    history = (await client.get(f"{API}/appointments/{appointment.id}/history")).json()
    assert [h["notes"] for h in history] == ["Status changed: PENDING → CONFIRMED"]


async def test_list_filters(client, staff, make_appointment):
    await make_appointment("09:00", staff_id=staff.id)
    await make_appointment("10:00", status=AppointmentStatus.CANCELLED)

    by_staff = await client.get(f"{API}/appointments", params={"staff_id": staff.id})
    cancelled = await client.get(f"{API}/appointments", params={"status": "cancelled"})

    assert [a["start_time"] for a in by_staff.json()] == ["09:00"]
    assert [a["start_time"] for a in cancelled.json()] == ["10:00"]


async def test_bulk_endpoint(client, staff, make_appointment):
    appointment = await make_appointment("10:00")

    resp = await client.post(
        f"{API}/appointments/bulk",
        json={"action": "assign", "appointment_ids": [appointment.id, "ghost"], "staff_id": staff.id},
    )

    assert resp.status_code == 200
    assert resp.json() == {
        "success": 1,
        "failed": 1,
        "total": 2,
        "results": {"success": [appointment.id], "failed": [{"id": "ghost", "reason": "Appointment not found"}]},
    }


@pytest.mark.parametrize(
    "body, status_code",
    [
        ({"action": "assign", "appointment_ids": []}, 400),
        ({"action": "assign", "appointment_ids": ["a"]}, 400),
        ({"action": "archive", "appointment_ids": ["a"]}, 422),
    ],
)
async def test_bulk_request_errors(client, body, status_code):
    resp = await client.post(f"{API}/appointments/bulk", json=body)

    assert resp.status_code == status_code


async def test_staff_create(client, staff, service):
    body = _booking(service.id, staff_id=staff.id, performed_by=staff.id, performed_by_name="Somchai")

    resp = await client.post(f"{API}/appointments/staff-create", json=body)

    assert resp.status_code == 201
    data = resp.json()
    assert data["status"] == "CONFIRMED"
    assert data["staff_name"] == "Somchai"
    history = (await client.get(f"{API}/appointments/{data['id']}/history")).json()
    assert history[0]["action"] == "CREATED"
    assert history[0]["notes"] == "Staff Somchai created appointment for themselves"

    again = await client.post(f"{API}/appointments/staff-create", json=_booking(service.id, "10:15", staff_id=staff.id))
    assert again.status_code == 409


async def test_unavailability_conflicts_need_confirmation(client, staff, make_appointment):
    await make_appointment("12:30", staff_id=staff.id)
    body = {
        "staff_id": staff.id,
        "date": DAY.isoformat(),
        "start_time": "12:00",
        "end_time": "13:00",
        "reason": "Lunch",
    }

    first = await client.post(f"{API}/staff-availability", json=body)
    assert first.status_code == 409
    assert first.json()["conflicts"][0]["details"]["time"] == "12:30 - 13:00"

    forced = await client.post(f"{API}/staff-availability", json={**body, "force_create": True})
    assert forced.status_code == 201
    assert forced.json()["staff_name"] == "Somchai"

    check = await client.post(
        f"{API}/staff/validate-availability",
        json={"staff_id": staff.id, "date": DAY.isoformat(), "start_time": "12:30", "end_time": "13:00"},
    )
    assert check.json()["available"] is False
    assert sorted(c["type"] for c in check.json()["conflicts"]) == ["double_booked", "unavailable"]

    record_id = forced.json()["id"]
    assert (await client.delete(f"{API}/staff-availability/{record_id}")).json() == {"success": True}
    assert (await client.delete(f"{API}/staff-availability/{record_id}")).status_code == 404


async def test_unavailability_rejects_bad_range(client, staff):
    resp = await client.post(
        f"{API}/staff-availability",
        json={"staff_id": staff.id, "date": DAY.isoformat(), "start_time": "13:00", "end_time": "12:00", "reason": "x"},
    )

    assert resp.status_code == 400


async def test_calendar(client, staff, make_appointment):
    await make_appointment("09:00", staff_id=staff.id)
    await make_appointment("10:00", status=AppointmentStatus.CANCELLED)
    await client.post(
        f"{API}/staff-availability",
        json={"staff_id": staff.id, "date": DAY.isoformat(), "start_time": "15:00", "end_time": "16:00", "reason": "Meeting"},
    )

    resp = await client.get(
        f"{API}/appointments/calendar",
        params={"start_date": DAY.isoformat(), "end_date": DAY.isoformat()},
    )

    data = resp.json()
    assert [a["start_time"] for a in data["appointments"]] == ["09:00"]
    assert [u["reason"] for u in data["unavailability"]] == ["Meeting"]
    assert data["date_range"]["view"] == "staff"


async def test_publish_reaches_registered_channels(client, hub):
    frames = []

    async def sink(message):
        frames.append(message)

    await hub.register("c1", "staff-a", "STAFF", sink)

    resp = await client.post(f"{API}/notifications/publish", json={"type": "test", "data": {"n": 1}, "target_role": "STAFF"})

    assert resp.json() == {"success": True, "sent": 1, "connection_count": 1}
    assert len(frames) == 1


async def test_staff_list_and_health(client, staff, customer, admin):
    staff_list = await client.get(f"{API}/staff")
    health = await client.get("/health")

    assert [s["name"] for s in staff_list.json()] == ["Admin", "Somchai"]
    assert health.json() == {"status": "ok", "connections": 0}


async def test_login_and_me(client, session):
    await create_user(
        session, UserCreate(email="nok@example.com", password="s3cret-pass", name="Nok", role=UserRole.STAFF)
    )
    await session.commit()

    bad = await client.post(f"{API}/auth/login", json={"email": "nok@example.com", "password": "wrong"})
    good = await client.post(f"{API}/auth/login", json={"email": "nok@example.com", "password": "s3cret-pass"})
    me = await client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {good.json()['access_token']}"})

    assert bad.status_code == 401
    assert me.json()["name"] == "Nok"
    assert me.json()["role"] == "STAFF"


async def test_unavailability_changes_are_audited(client, session, staff):
    created = await client.post(
        f"{API}/staff-availability",
        json={"staff_id": staff.id, "date": DAY.isoformat(), "start_time": "12:00", "end_time": "13:00", "reason": "Lunch"},
    )
    record_id = created.json()["id"]

    updated = await client.patch(f"{API}/staff-availability/{record_id}", json={"end_time": "13:30", "reason": "Lunch"})
    await client.delete(f"{API}/staff-availability/{record_id}")

    assert updated.json()["end_time"] == "13:30"
    entries = await list_audit_logs(session, record_id, entity_type=ENTITY_STAFF_AVAILABILITY)
    by_action = {e.action: e for e in entries}
    assert sorted(by_action) == ["CREATE", "DELETE", "UPDATE"]
    assert len(entries) == 3
    assert json.loads(by_action["CREATE"].new_value)["reason"] == "Lunch"
    assert by_action["UPDATE"].field_changed == "endTime"
    assert (by_action["UPDATE"].old_value, by_action["UPDATE"].new_value) == ("13:00", "13:30")
    assert json.loads(by_action["DELETE"].old_value)["end_time"] == "13:30"
    assert {e.performed_by for e in entries} == {"SYSTEM"}
