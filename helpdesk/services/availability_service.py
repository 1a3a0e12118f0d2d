import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core.errors import ValidationError
from helpdesk.models.appointment import Appointment, AppointmentStatus
from helpdesk.models.service import Service
from helpdesk.models.staff_availability import StaffAvailability
from helpdesk.services.timeslots import overlaps, parse_time, time_ranges_overlap, to_date

logger = logging.getLogger(__name__)

UNAVAILABLE = "unavailable"
DOUBLE_BOOKED = "double_booked"


@dataclass
class Conflict:
    type: str
    reason: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class AvailabilityResult:
    available: bool
    conflicts: list[Conflict] = field(default_factory=list)


async def check_staff_availability(
    session: AsyncSession,
    staff_id: str,
    day: date | datetime | str,
    start_time: str,
    end_time: str,
    exclude_appointment_id: str | None = None,
) -> AvailabilityResult:
    """Report every unavailability window and live booking of ``staff_id`` that
    overlaps ``start_time``-``end_time`` on ``day``.

    Storage failures and malformed stored records fail open (available, no
    conflicts) so a broken check never blocks the caller. Malformed request times
    raise ValidationError.
    """
    target = to_date(day)
    start, end = parse_time(start_time), parse_time(end_time)
    conflicts: list[Conflict] = []
    try:
        result = await session.execute(
            select(StaffAvailability).where(
                StaffAvailability.staff_id == staff_id,
                StaffAvailability.date == target,
            )
        )
        for record in result.scalars().all():
            if overlaps(start, end, parse_time(record.start_time), parse_time(record.end_time)):
                conflicts.append(
                    Conflict(
                        type=UNAVAILABLE,
                        reason=record.reason,
                        details={
                            "start_time": record.start_time,
                            "end_time": record.end_time,
                            "recurring": record.recurring,
                        },
                    )
                )

        q = (
            select(Appointment, Service)
            .join(Service, Service.id == Appointment.service_id)
            .where(
                Appointment.staff_id == staff_id,
                Appointment.date == target,
                Appointment.status != AppointmentStatus.CANCELLED.value,
            )
        )
        if exclude_appointment_id:
            q = q.where(Appointment.id != exclude_appointment_id)
        result = await session.execute(q)
        for appointment, service in result.all():
            if overlaps(start, end, parse_time(appointment.start_time), parse_time(appointment.end_time)):
                conflicts.append(
                    Conflict(
                        type=DOUBLE_BOOKED,
                        reason=f"Already assigned to {service.display_name}",
                        details={
                            "appointment_id": appointment.id,
                            "start_time": appointment.start_time,
                            "end_time": appointment.end_time,
                            "customer_name": appointment.user_name,
                            "service": service.display_name,
                        },
                    )
                )
    except (SQLAlchemyError, ValidationError) as e:
        logger.exception("Availability check failed for staff %s on %s, allowing: %s", staff_id, target, e)
        return AvailabilityResult(available=True, conflicts=[])

    return AvailabilityResult(available=not conflicts, conflicts=conflicts)


async def find_overlapping_appointments(
    session: AsyncSession,
    staff_id: str,
    day: date,
    start_time: str,
    end_time: str,
) -> list[tuple[Appointment, Service]]:
    """Live appointments of ``staff_id`` that a new unavailability window would collide with."""
    result = await session.execute(
        select(Appointment, Service)
        .join(Service, Service.id == Appointment.service_id)
        .where(
            Appointment.staff_id == staff_id,
            Appointment.date == day,
            Appointment.status != AppointmentStatus.CANCELLED.value,
        )
        .order_by(Appointment.start_time)
    )
    return [
        (a, s)
        for a, s in result.all()
        if time_ranges_overlap(start_time, end_time, a.start_time, a.end_time)
    ]
