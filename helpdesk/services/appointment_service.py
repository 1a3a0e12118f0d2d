import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core.db import persist
from helpdesk.core.errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from helpdesk.models.appointment import Appointment, AppointmentCreate, AppointmentStatus
from helpdesk.models.audit import AuditAction, HistoryAction
from helpdesk.models.service import Service
from helpdesk.models.staff_availability import StaffAvailability
from helpdesk.models.user import User
from helpdesk.services.audit_service import Actor, AuditRecorder
from helpdesk.services.availability_service import check_staff_availability
from helpdesk.services.notification_hub import NotificationEvent, NotificationHub
from helpdesk.services.schedule_locks import ScheduleLocks
from helpdesk.services.staff_service import get_staff_member
from helpdesk.services.timeslots import end_time_for

logger = logging.getLogger(__name__)

STAFF_ROLE = "STAFF"

# Status only moves forward toward COMPLETED, or sideways to CANCELLED
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    AppointmentStatus.PENDING.value: frozenset(
        {AppointmentStatus.CONFIRMED.value, AppointmentStatus.COMPLETED.value, AppointmentStatus.CANCELLED.value}
    ),
    AppointmentStatus.CONFIRMED.value: frozenset(
        {AppointmentStatus.COMPLETED.value, AppointmentStatus.CANCELLED.value}
    ),
    AppointmentStatus.COMPLETED.value: frozenset(),
    AppointmentStatus.CANCELLED.value: frozenset(),
}


@dataclass
class StatusChange:
    appointment_id: str
    old_status: str
    new_status: str


def normalize_status(status: str | None) -> str:
    value = (status or "").strip().upper()
    if value not in ALLOWED_TRANSITIONS:
        raise ValidationError(f"Invalid status {status!r}")
    return value


def ensure_transition(old_status: str, new_status: str) -> None:
    if new_status not in ALLOWED_TRANSITIONS.get(old_status, frozenset()):
        raise InvalidTransitionError(f"Invalid status transition: {old_status} → {new_status}")


async def get_service(session: AsyncSession, service_id: str) -> Service:
    service = await session.get(Service, service_id)
    if service is None:
        raise NotFoundError("Service not found")
    return service


async def list_services(session: AsyncSession) -> list[Service]:
    result = await session.execute(select(Service).order_by(Service.name))
    return list(result.scalars().all())


async def get_appointment(session: AsyncSession, appointment_id: str) -> Appointment:
    appointment = await session.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFoundError("Appointment not found")
    return appointment


def _detail_query():
    return (
        select(Appointment, Service, User.name)
        .join(Service, Service.id == Appointment.service_id)
        .outerjoin(User, User.id == Appointment.staff_id)
    )


async def get_appointment_detail(
    session: AsyncSession, appointment_id: str
) -> tuple[Appointment, Service, str | None]:
    result = await session.execute(_detail_query().where(Appointment.id == appointment_id))
    row = result.first()
    if row is None:
        raise NotFoundError("Appointment not found")
    appointment, service, staff_name = row
    return appointment, service, staff_name


async def list_appointments(
    session: AsyncSession,
    status: str | None = None,
    staff_id: str | None = None,
    day: date | None = None,
) -> list[tuple[Appointment, Service, str | None]]:
    q = _detail_query().order_by(Appointment.date.desc(), Appointment.start_time)
    if status:
        q = q.where(Appointment.status == normalize_status(status))
    if staff_id:
        q = q.where(Appointment.staff_id == staff_id)
    if day:
        q = q.where(Appointment.date == day)
    result = await session.execute(q)
    return [(a, s, n) for a, s, n in result.all()]


async def list_calendar(
    session: AsyncSession,
    start_date: date,
    end_date: date,
    staff_id: str | None = None,
) -> tuple[list[tuple[Appointment, Service, str | None]], list[tuple[StaffAvailability, User]]]:
    """Live appointments and unavailability windows between two dates, inclusive."""
    if start_date > end_date:
        raise ValidationError("start_date must not be after end_date")
    q = (
        _detail_query()
        .where(
            Appointment.date >= start_date,
            Appointment.date <= end_date,
            Appointment.status != AppointmentStatus.CANCELLED.value,
        )
        .order_by(Appointment.date, Appointment.start_time)
    )
    if staff_id:
        q = q.where(Appointment.staff_id == staff_id)
    result = await session.execute(q)
    appointments = [(a, s, n) for a, s, n in result.all()]

    uq = (
        select(StaffAvailability, User)
        .join(User, User.id == StaffAvailability.staff_id)
        .where(StaffAvailability.date >= start_date, StaffAvailability.date <= end_date)
        .order_by(StaffAvailability.date, StaffAvailability.start_time)
    )
    if staff_id:
        uq = uq.where(StaffAvailability.staff_id == staff_id)
    result = await session.execute(uq)
    unavailability = [(r, u) for r, u in result.all()]
    return appointments, unavailability


async def create_appointment(session: AsyncSession, data: AppointmentCreate) -> Appointment:
    """Self-service booking: PENDING, no staff yet."""
    service = await get_service(session, data.service_id)
    appointment = Appointment(
        date=data.date,
        start_time=data.start_time,
        end_time=end_time_for(data.start_time, service.duration),
        user_name=data.user_name,
        user_phone=data.user_phone,
        user_email=data.user_email or None,
        description=data.description,
        service_id=service.id,
        status=AppointmentStatus.PENDING.value,
    )
    session.add(appointment)
    await persist(session)
    await session.refresh(appointment)
    logger.info("Appointment %s booked for %s %s-%s", appointment.id, appointment.date, appointment.start_time, appointment.end_time)
    return appointment


async def create_staff_appointment(
    session: AsyncSession,
    data: AppointmentCreate,
    staff_id: str,
    actor: Actor,
    *,
    recorder: AuditRecorder,
    hub: NotificationHub,
    locks: ScheduleLocks,
    force: bool = False,
) -> Appointment:
    """A staff member books a slot for themselves; pre-confirmed and assigned."""
    staff = await get_staff_member(session, staff_id)
    service = await get_service(session, data.service_id)
    end_time = end_time_for(data.start_time, service.duration)

    async with locks.hold(session, staff.id, data.date):
        if not force:
            check = await check_staff_availability(session, staff.id, data.date, data.start_time, end_time)
            if not check.available:
                raise ConflictError("Staff is not available at this time", check.conflicts)
        appointment = Appointment(
            date=data.date,
            start_time=data.start_time,
            end_time=end_time,
            user_name=data.user_name,
            user_phone=data.user_phone,
            user_email=data.user_email or None,
            description=data.description,
            service_id=service.id,
            staff_id=staff.id,
            status=AppointmentStatus.CONFIRMED.value,
        )
        session.add(appointment)
        await persist(session)

    await recorder.record_history(
        appointment_id=appointment.id,
        action=HistoryAction.CREATED.value,
        actor=actor,
        new_staff_id=staff.id,
        new_staff_name=staff.name,
        new_status=appointment.status,
        notes=f"Staff {actor.name} created appointment for themselves",
    )
    await recorder.record_audit(
        entity_id=appointment.id,
        action=AuditAction.CREATE.value,
        actor=actor,
        new_value={
            "appointment_id": appointment.id,
            "staff_id": staff.id,
            "service_id": service.id,
            "date": appointment.date.isoformat(),
            "start_time": appointment.start_time,
            "end_time": appointment.end_time,
            "user_name": appointment.user_name,
        },
    )
    await hub.publish(
        NotificationEvent(
            type="appointment:created",
            data={
                "appointment_id": appointment.id,
                "staff_name": staff.name,
                "date": appointment.date.isoformat(),
                "start_time": appointment.start_time,
                "performed_by_name": actor.name,
            },
            target_role=STAFF_ROLE,
        )
    )
    return appointment


async def apply_status(
    session: AsyncSession,
    appointment: Appointment,
    new_status: str,
    *,
    locks: ScheduleLocks,
) -> StatusChange:
    """Validate and persist one transition against the freshly re-read status."""
    async with locks.hold_appointment(appointment.id):
        await session.refresh(appointment, with_for_update=True)
        old_status = appointment.status
        ensure_transition(old_status, new_status)
        appointment.status = new_status
        appointment.touch()
        session.add(appointment)
        await persist(session)
    return StatusChange(appointment_id=appointment.id, old_status=old_status, new_status=new_status)


async def record_status_change(
    change: StatusChange,
    actor: Actor,
    recorder: AuditRecorder,
    *,
    bulk: bool = False,
    cancellation: bool = False,
) -> None:
    await recorder.record_audit(
        entity_id=change.appointment_id,
        action=AuditAction.STATUS_CHANGE.value,
        actor=actor,
        field_changed="status",
        old_value=change.old_status,
        new_value=change.new_status,
    )
    if cancellation:
        action = HistoryAction.CANCELLED.value
        notes = "Bulk cancellation" if bulk else "Cancelled"
    else:
        action = HistoryAction.STATUS_CHANGED.value
        prefix = "Bulk status change" if bulk else "Status changed"
        notes = f"{prefix}: {change.old_status} → {change.new_status}"
    await recorder.record_history(
        appointment_id=change.appointment_id,
        action=action,
        actor=actor,
        old_status=change.old_status,
        new_status=change.new_status,
        notes=notes,
    )


async def change_status(
    session: AsyncSession,
    appointment_id: str,
    status: str,
    actor: Actor,
    *,
    recorder: AuditRecorder,
    hub: NotificationHub,
    locks: ScheduleLocks,
) -> Appointment:
    new_status = normalize_status(status)
    appointment = await get_appointment(session, appointment_id)
    change = await apply_status(session, appointment, new_status, locks=locks)
    await record_status_change(change, actor, recorder)
    await hub.publish(
        NotificationEvent(
            type="appointment:status_changed",
            data={
                "appointment_id": appointment.id,
                "old_status": change.old_status,
                "new_status": change.new_status,
                "performed_by_name": actor.name,
            },
            target_role=STAFF_ROLE,
        )
    )
    return appointment
