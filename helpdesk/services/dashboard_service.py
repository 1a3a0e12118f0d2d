"""Front-desk status board and per-staff workload figures.

Capacity is derived from the configured working hours and slot grid, and
"today" and "now" are the deployment's local wall clock.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core.config import settings
from helpdesk.core.errors import NotFoundError, ValidationError
from helpdesk.models.appointment import Appointment, AppointmentStatus
from helpdesk.models.audit import AppointmentHistory
from helpdesk.models.service import Service
from helpdesk.models.staff_availability import StaffAvailability
from helpdesk.models.user import STAFF_ROLES, User, UserRole
from helpdesk.services.appointment_service import list_services
from helpdesk.services.timeslots import overlaps, parse_time

logger = logging.getLogger(__name__)

OPEN = "open"
LIMITED = "limited"
CLOSED = "closed"

UPCOMING_LIMIT = 5
ACTIVITY_LIMIT = 10

_CANCELLED = AppointmentStatus.CANCELLED.value


def working_minutes() -> int:
    return parse_time(settings.work_end) - parse_time(settings.work_start)


def slots_per_day() -> int:
    return working_minutes() // settings.slot_interval_minutes


def business_days(start: date, end: date) -> int:
    """Monday-to-Friday dates between ``start`` and ``end``, both inclusive."""
    return sum(1 for n in range((end - start).days + 1) if (start + timedelta(days=n)).weekday() < 5)


def default_metrics_range(today: date) -> tuple[date, date]:
    """Monday of this week through Sunday of next week."""
    monday = today - timedelta(days=today.weekday())
    return monday, monday + timedelta(days=13)


def _minutes(start_time: str, end_time: str) -> int:
    return parse_time(end_time) - parse_time(start_time)


def _percent(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


@dataclass
class DashboardStatus:
    status: str
    available_staff: int
    total_staff: int
    today_slots: int
    services: list[Service] = field(default_factory=list)


async def get_dashboard_status(session: AsyncSession, now: datetime | None = None) -> DashboardStatus:
    """Whether the desk is open right now, and how much of today is still bookable.

    A staff member is away while ``now`` falls inside one of today's unavailability
    windows. Outside working hours the desk is closed regardless of staffing.
    """
    now = now or datetime.now()
    today = now.date()
    current = now.hour * 60 + now.minute

    result = await session.execute(select(User.id).where(User.role == UserRole.STAFF.value))
    staff_ids = set(result.scalars().all())

    result = await session.execute(select(StaffAvailability).where(StaffAvailability.date == today))
    away = set()
    for record in result.scalars().all():
        try:
            window = parse_time(record.start_time), parse_time(record.end_time)
        except ValidationError:
            logger.warning("Skipping unavailability %s with malformed times", record.id)
            continue
        if overlaps(*window, current, current + 1):
            away.add(record.staff_id)
    available = len(staff_ids - away)

    if not parse_time(settings.work_start) <= current < parse_time(settings.work_end) or available == 0:
        status = CLOSED
    elif available < len(staff_ids):
        status = LIMITED
    else:
        status = OPEN

    booked = await session.scalar(
        select(func.count())
        .select_from(Appointment)
        .where(Appointment.date == today, Appointment.status != _CANCELLED)
    )
    return DashboardStatus(
        status=status,
        available_staff=available,
        total_staff=len(staff_ids),
        today_slots=max(0, len(staff_ids) * slots_per_day() - (booked or 0)),
        services=await list_services(session),
    )


@dataclass
class AppointmentCounts:
    total: int = 0
    pending: int = 0
    confirmed: int = 0
    completed: int = 0
    cancelled: int = 0


@dataclass
class Workload:
    total_hours: float
    scheduled_slots: int
    available_slots: int
    utilization_rate: float


@dataclass
class Performance:
    completion_rate: float
    avg_completion_days: float | None
    on_time_rate: float


@dataclass
class ReasonSummary:
    reason: str
    count: int
    hours: float


@dataclass
class UnavailabilitySummary:
    total: int
    total_hours: float
    reasons: list[ReasonSummary]


@dataclass
class UpcomingAppointment:
    id: str
    date: date
    start_time: str
    end_time: str
    user_name: str
    status: str
    service_name: str


@dataclass
class ActivityEntry:
    id: str
    appointment_id: str
    action: str
    performed_by: str
    performed_by_name: str
    notes: str | None
    created_at: datetime
    customer_name: str
    service_name: str


@dataclass
class StaffMetrics:
    staff: User
    start_date: date
    end_date: date
    appointments: AppointmentCounts
    workload: Workload
    performance: Performance
    unavailability: UnavailabilitySummary
    upcoming: list[UpcomingAppointment]
    recent_activity: list[ActivityEntry]


async def get_staff_metrics(
    session: AsyncSession,
    staff_id: str,
    start_date: date | None = None,
    end_date: date | None = None,
    today: date | None = None,
) -> StaffMetrics:
    today = today or date.today()
    default_start, default_end = default_metrics_range(today)
    start_date = start_date or default_start
    end_date = end_date or default_end
    if start_date > end_date:
        raise ValidationError("start_date must not be after end_date")

    staff = await session.get(User, staff_id)
    if staff is None or staff.role not in STAFF_ROLES:
        raise NotFoundError("Staff member not found")

    result = await session.execute(
        select(Appointment).where(
            Appointment.staff_id == staff_id,
            Appointment.date >= start_date,
            Appointment.date <= end_date,
        )
    )
    appointments = list(result.scalars().all())

    counts = AppointmentCounts(total=len(appointments))
    for appointment in appointments:
        name = appointment.status.lower()
        setattr(counts, name, getattr(counts, name) + 1)

    live = [a for a in appointments if a.status != _CANCELLED]
    booked_minutes = sum(_minutes(a.start_time, a.end_time) for a in live)
    working_days = business_days(start_date, end_date)
    workload = Workload(
        total_hours=round(booked_minutes / 60, 2),
        scheduled_slots=len(live),
        available_slots=working_days * slots_per_day() - len(live),
        utilization_rate=_percent(booked_minutes, working_days * working_minutes()),
    )

    completion_days = [
        (a.updated_at - a.created_at).days
        for a in appointments
        if a.status == AppointmentStatus.COMPLETED.value and a.updated_at >= a.created_at
    ]
    performance = Performance(
        completion_rate=_percent(counts.completed, counts.total),
        avg_completion_days=round(sum(completion_days) / len(completion_days), 1) if completion_days else None,
        on_time_rate=_percent(len(live), counts.total),
    )

    result = await session.execute(
        select(StaffAvailability)
        .where(
            StaffAvailability.staff_id == staff_id,
            StaffAvailability.date >= start_date,
            StaffAvailability.date <= end_date,
        )
        .order_by(StaffAvailability.date)
    )
    reasons: dict[str, ReasonSummary] = {}
    away_minutes = 0
    records = list(result.scalars().all())
    for record in records:
        minutes = _minutes(record.start_time, record.end_time)
        away_minutes += minutes
        summary = reasons.setdefault(record.reason, ReasonSummary(record.reason, 0, 0.0))
        summary.count += 1
        summary.hours += minutes / 60
    for summary in reasons.values():
        summary.hours = round(summary.hours, 2)
    unavailability = UnavailabilitySummary(
        total=len(records),
        total_hours=round(away_minutes / 60, 2),
        reasons=sorted(reasons.values(), key=lambda r: r.count, reverse=True),
    )

    result = await session.execute(
        select(Appointment, Service)
        .join(Service, Service.id == Appointment.service_id)
        .where(
            Appointment.staff_id == staff_id,
            Appointment.date >= today,
            Appointment.status.in_([AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value]),
        )
        .order_by(Appointment.date, Appointment.start_time)
        .limit(UPCOMING_LIMIT)
    )
    upcoming = [
        UpcomingAppointment(
            id=a.id,
            date=a.date,
            start_time=a.start_time,
            end_time=a.end_time,
            user_name=a.user_name,
            status=a.status,
            service_name=s.display_name,
        )
        for a, s in result.all()
    ]

    result = await session.execute(
        select(AppointmentHistory, Appointment.user_name, Service)
        .join(Appointment, Appointment.id == AppointmentHistory.appointment_id)
        .join(Service, Service.id == Appointment.service_id)
        .where(Appointment.staff_id == staff_id)
        .order_by(AppointmentHistory.created_at.desc())
        .limit(ACTIVITY_LIMIT)
    )
    activity = [
        ActivityEntry(
            id=h.id,
            appointment_id=h.appointment_id,
            action=h.action,
            performed_by=h.performed_by,
            performed_by_name=h.performed_by_name,
            notes=h.notes,
            created_at=h.created_at,
            customer_name=customer_name,
            service_name=s.display_name,
        )
        for h, customer_name, s in result.all()
    ]

    return StaffMetrics(
        staff=staff,
        start_date=start_date,
        end_date=end_date,
        appointments=counts,
        workload=workload,
        performance=performance,
        unavailability=unavailability,
        upcoming=upcoming,
        recent_activity=activity,
    )
