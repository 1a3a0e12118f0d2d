from datetime import datetime, timedelta

import pytest

from helpdesk.core.errors import NotFoundError, ValidationError
from helpdesk.models import AppointmentStatus, StaffAvailability
from helpdesk.services.audit_service import Actor
from helpdesk.services.dashboard_service import (
    CLOSED,
    LIMITED,
    OPEN,
    business_days,
    default_metrics_range,
    get_dashboard_status,
    get_staff_metrics,
    slots_per_day,
)

from tests.conftest import DAY

API = "/api/v1"
MORNING = datetime.combine(DAY, datetime.min.time()).replace(hour=10)


async def _away(session, staff_id, start, end, reason="Lunch", day=DAY):
    session.add(StaffAvailability(staff_id=staff_id, date=day, start_time=start, end_time=end, reason=reason))
    await session.commit()


def test_calendar_helpers():
    assert slots_per_day() == 16
    assert business_days(DAY, DAY + timedelta(days=6)) == 5
    assert business_days(DAY + timedelta(days=5), DAY + timedelta(days=6)) == 0
    # DAY is a Monday
    assert default_metrics_range(DAY + timedelta(days=3)) == (DAY, DAY + timedelta(days=13))


async def test_desk_is_open_when_everyone_is_in(session, staff, other_staff, admin, service, make_appointment):
    await make_appointment("09:00")
    await make_appointment("09:30", status=AppointmentStatus.CANCELLED)

    board = await get_dashboard_status(session, now=MORNING)

    assert board.status == OPEN
    assert (board.available_staff, board.total_staff) == (2, 2)
    assert board.today_slots == 2 * 16 - 1
    assert [s.name for s in board.services] == ["Hardware"]


async def test_desk_is_limited_while_someone_is_away(session, staff, other_staff):
    await _away(session, staff.id, "09:30", "10:30")
    await _away(session, other_staff.id, "10:00", "10:30", day=DAY + timedelta(days=1))

    board = await get_dashboard_status(session, now=MORNING)

    assert board.status == LIMITED
    assert board.available_staff == 1


async def test_window_ending_now_does_not_count(session, staff):
    await _away(session, staff.id, "09:00", "10:00")

    board = await get_dashboard_status(session, now=MORNING)

    assert board.status == OPEN


async def test_desk_is_closed_without_staff_or_outside_hours(session, staff, other_staff):
    early = await get_dashboard_status(session, now=MORNING.replace(hour=7))
    await _away(session, staff.id, "08:30", "16:30", reason="Leave")
    await _away(session, other_staff.id, "10:00", "11:00", reason="Training")
    nobody = await get_dashboard_status(session, now=MORNING)

    assert early.status == CLOSED
    assert early.available_staff == 2
    assert nobody.status == CLOSED
    assert nobody.available_staff == 0


async def test_staff_metrics(session, staff, other_staff, make_appointment, recorder):
    pending = await make_appointment("10:00", staff_id=staff.id, user_name="Khun Dang")
    await make_appointment("11:00", staff_id=staff.id, status=AppointmentStatus.COMPLETED)
    await make_appointment("13:00", staff_id=staff.id, status=AppointmentStatus.CANCELLED)
    await make_appointment("10:00", staff_id=staff.id, day=DAY + timedelta(days=14))
    await make_appointment("14:00", staff_id=other_staff.id)
    await _away(session, staff.id, "12:00", "13:00")
    await _away(session, staff.id, "12:00", "13:00", day=DAY + timedelta(days=1))
    await _away(session, staff.id, "14:00", "16:00", reason="Training")
    await recorder.record_history(
        appointment_id=pending.id, action="ASSIGNED", actor=Actor("admin-1", "Admin"), notes="Assigned to Somchai"
    )

    metrics = await get_staff_metrics(session, staff.id, DAY, DAY + timedelta(days=4), today=DAY)

    assert metrics.staff.name == "Somchai"
    counts = metrics.appointments
    assert (counts.total, counts.pending, counts.completed, counts.cancelled) == (3, 1, 1, 1)
    assert metrics.workload.total_hours == 1.0
    assert metrics.workload.scheduled_slots == 2
    assert metrics.workload.available_slots == 5 * 16 - 2
    assert metrics.workload.utilization_rate == 2.5
    assert metrics.performance.completion_rate == 33.33
    assert metrics.performance.on_time_rate == 66.67
    assert metrics.performance.avg_completion_days == 0.0
    assert metrics.unavailability.total == 3
    assert metrics.unavailability.total_hours == 4.0
    assert [(r.reason, r.count, r.hours) for r in metrics.unavailability.reasons] == [
        ("Lunch", 2, 2.0),
        ("Training", 1, 2.0),
    ]
    assert [(u.date, u.start_time) for u in metrics.upcoming] == [
        (DAY, "10:00"),
        (DAY + timedelta(days=14), "10:00"),
    ]
    assert len(metrics.recent_activity) == 1
    assert metrics.recent_activity[0].customer_name == "Khun Dang"
    assert metrics.recent_activity[0].service_name == "ฮาร์ดแวร์"


async def test_metrics_for_unknown_or_non_staff_user(session, customer):
    with pytest.raises(NotFoundError):
        await get_staff_metrics(session, "nobody")
    with pytest.raises(NotFoundError):
        await get_staff_metrics(session, customer.id)


async def test_metrics_reject_reversed_range(session, staff):
    with pytest.raises(ValidationError):
        await get_staff_metrics(session, staff.id, DAY, DAY - timedelta(days=1))


async def test_dashboard_endpoint(client, staff, service):
    resp = await client.get(f"{API}/dashboard")

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] in (OPEN, LIMITED, CLOSED)
    assert data["total_staff"] == 1
    assert data["services"][0]["name_th"] == "ฮาร์ดแวร์"


async def test_staff_metrics_endpoint(client, staff, make_appointment):
    await make_appointment("10:00", staff_id=staff.id)

    resp = await client.get(
        f"{API}/staff/{staff.id}/metrics",
        params={"start_date": DAY.isoformat(), "end_date": DAY.isoformat()},
    )
    missing = await client.get(f"{API}/staff/nobody/metrics")

    assert resp.status_code == 200
    data = resp.json()
    assert data["staff"]["email"] == "somchai@example.com"
    assert data["appointments"]["total"] == 1
    assert data["workload"]["available_slots"] == 15
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Staff member not found"
