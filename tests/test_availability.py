import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from helpdesk.core.errors import ValidationError
from helpdesk.models import AppointmentStatus, StaffAvailability
from helpdesk.services.availability_service import DOUBLE_BOOKED, UNAVAILABLE, check_staff_availability

from tests.conftest import DAY


async def _lunch(session, staff_id, start="12:00", end="13:00", reason="Lunch"):
    record = StaffAvailability(staff_id=staff_id, date=DAY, start_time=start, end_time=end, reason=reason)
    session.add(record)
    await session.commit()
    return record


async def test_unavailability_window_conflicts(session, staff):
    await _lunch(session, staff.id)

    result = await check_staff_availability(session, staff.id, DAY, "12:30", "13:00")

    assert result.available is False
    assert len(result.conflicts) == 1
    assert result.conflicts[0].type == UNAVAILABLE
    assert result.conflicts[0].reason == "Lunch"
    assert result.conflicts[0].details["start_time"] == "12:00"


async def test_touching_unavailability_is_available(session, staff):
    await _lunch(session, staff.id)

    result = await check_staff_availability(session, staff.id, DAY, "11:00", "12:00")

    assert result.available is True
    assert result.conflicts == []


async def test_accepts_iso_date_string(session, staff):
    await _lunch(session, staff.id)

    result = await check_staff_availability(session, staff.id, DAY.isoformat(), "12:15", "12:45")

    assert result.available is False


async def test_other_days_and_other_staff_do_not_conflict(session, staff, other_staff, make_appointment):
    await _lunch(session, other_staff.id)
    await make_appointment("12:00", staff_id=staff.id, day=DAY.replace(day=20))

    result = await check_staff_availability(session, staff.id, DAY, "12:00", "13:00")

    assert result.available is True


async def test_overlapping_appointment_is_double_booked(session, staff, make_appointment):
    existing = await make_appointment("10:00", staff_id=staff.id, user_name="Khun Dang")

    result = await check_staff_availability(session, staff.id, DAY, "10:15", "10:45")

    assert result.available is False
    assert [c.type for c in result.conflicts] == [DOUBLE_BOOKED]
    conflict = result.conflicts[0]
    assert conflict.reason == "Already assigned to ฮาร์ดแวร์"
    assert conflict.details["appointment_id"] == existing.id
    assert conflict.details["customer_name"] == "Khun Dang"


async def test_cancelled_appointment_never_conflicts(session, staff, make_appointment):
    await make_appointment("10:00", staff_id=staff.id, status=AppointmentStatus.CANCELLED)

    result = await check_staff_availability(session, staff.id, DAY, "10:00", "10:30")

    assert result.available is True


async def test_excluded_appointment_is_not_reported(session, staff, make_appointment):
    existing = await make_appointment("10:00", staff_id=staff.id)

    result = await check_staff_availability(
        session, staff.id, DAY, "10:00", "10:30", exclude_appointment_id=existing.id
    )

    assert result.available is True


async def test_reports_every_conflict(session, staff, make_appointment):
    await _lunch(session, staff.id, "10:00", "11:00", reason="Training")
    await make_appointment("10:30", staff_id=staff.id)

    result = await check_staff_availability(session, staff.id, DAY, "10:00", "11:00")

    assert sorted(c.type for c in result.conflicts) == [DOUBLE_BOOKED, UNAVAILABLE]


async def test_storage_failure_fails_open(tmp_path):
    broken = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'nowhere.db'}")
    maker = async_sessionmaker(broken, class_=AsyncSession)
    async with maker() as session:
        result = await check_staff_availability(session, "staff-1", DAY, "10:00", "11:00")
    await broken.dispose()

    assert result.available is True
    assert result.conflicts == []


async def test_malformed_stored_window_fails_open(session, staff):
    await _lunch(session, staff.id, start="25:00", end="13:00")

    result = await check_staff_availability(session, staff.id, DAY, "12:30", "13:00")

    assert result.available is True
    assert result.conflicts == []


async def test_malformed_request_time_still_raises(session, staff):
    with pytest.raises(ValidationError):
        await check_staff_availability(session, staff.id, DAY, "12:3O", "13:00")
