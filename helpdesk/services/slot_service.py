from dataclasses import dataclass
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core.config import settings
from helpdesk.models.appointment import Appointment, AppointmentStatus
from helpdesk.services.appointment_service import get_service
from helpdesk.services.timeslots import format_minutes, overlaps, parse_time


@dataclass
class SlotInfo:
    start_time: str
    end_time: str
    available: bool


def _slot_starts() -> list[int]:
    """Slot start times in minutes for the business day (work_start to work_end, end exclusive)."""
    start = parse_time(settings.work_start)
    end = parse_time(settings.work_end)
    return list(range(start, end, settings.slot_interval_minutes))


async def get_booked_ranges(session: AsyncSession, d: date) -> list[tuple[int, int]]:
    result = await session.execute(
        select(Appointment.start_time, Appointment.end_time).where(
            Appointment.date == d,
            Appointment.status != AppointmentStatus.CANCELLED.value,
        )
    )
    return [(parse_time(s), parse_time(e)) for s, e in result.all()]


async def get_available_slots_for_date(
    session: AsyncSession, d: date, service_id: str
) -> list[SlotInfo]:
    """Self-service slot grid: a slot is free when a booking of the service's
    duration starting there would overlap no live appointment that day."""
    service = await get_service(session, service_id)
    booked = await get_booked_ranges(session, d)
    out: list[SlotInfo] = []
    for start in _slot_starts():
        end = start + service.duration
        if end >= 24 * 60:
            continue
        available = not any(overlaps(start, end, b_start, b_end) for b_start, b_end in booked)
        out.append(SlotInfo(start_time=format_minutes(start), end_time=format_minutes(end), available=available))
    return out
