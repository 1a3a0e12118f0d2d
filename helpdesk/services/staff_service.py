import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core.db import persist
from helpdesk.core.errors import ConflictError, InvalidStaffError, NotFoundError, ValidationError
from helpdesk.models.audit import AuditAction
from helpdesk.models.staff_availability import StaffAvailability
from helpdesk.models.user import STAFF_ROLES, User
from helpdesk.services.audit_service import SYSTEM_ACTOR, Actor, AuditRecorder
from helpdesk.services.availability_service import Conflict, DOUBLE_BOOKED, find_overlapping_appointments
from helpdesk.services.schedule_locks import ScheduleLocks
from helpdesk.services.timeslots import validate_range

logger = logging.getLogger(__name__)

ENTITY_STAFF_AVAILABILITY = "STAFF_AVAILABILITY"

_AUDIT_FIELDS = {
    "start_time": "startTime",
    "end_time": "endTime",
    "reason": "reason",
    "recurring": "recurring",
}


async def get_staff_member(session: AsyncSession, staff_id: str | None) -> User:
    """The STAFF or ADMIN user ``staff_id`` names; anything else is InvalidStaffError."""
    if not staff_id:
        raise InvalidStaffError()
    user = await session.get(User, staff_id)
    if user is None or user.role not in STAFF_ROLES:
        raise InvalidStaffError()
    return user


async def list_staff(session: AsyncSession) -> list[User]:
    result = await session.execute(
        select(User).where(User.role.in_(STAFF_ROLES)).order_by(User.name)
    )
    return list(result.scalars().all())


async def list_unavailability(
    session: AsyncSession,
    staff_id: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[tuple[StaffAvailability, User]]:
    q = (
        select(StaffAvailability, User)
        .join(User, User.id == StaffAvailability.staff_id)
        .order_by(StaffAvailability.date, StaffAvailability.start_time)
    )
    if staff_id:
        q = q.where(StaffAvailability.staff_id == staff_id)
    if start_date:
        q = q.where(StaffAvailability.date >= start_date)
    if end_date:
        q = q.where(StaffAvailability.date <= end_date)
    result = await session.execute(q)
    return [(r, u) for r, u in result.all()]


def _snapshot(record: StaffAvailability) -> dict:
    return {
        "staff_id": record.staff_id,
        "date": record.date.isoformat(),
        "start_time": record.start_time,
        "end_time": record.end_time,
        "reason": record.reason,
        "recurring": record.recurring,
    }


async def create_unavailability(
    session: AsyncSession,
    staff_id: str,
    day: date,
    start_time: str,
    end_time: str,
    reason: str,
    recurring: bool = False,
    force_create: bool = False,
    *,
    locks: ScheduleLocks,
    recorder: AuditRecorder,
    actor: Actor = SYSTEM_ACTOR,
) -> StaffAvailability:
    """Block out time for a staff member.

    Existing appointments are never moved. Unless ``force_create`` is set, any live
    appointment the window would cover raises ConflictError listing them so the
    creator can confirm. The check and insert hold the (staff, day) lock that
    assignments take.
    """
    validate_range(start_time, end_time)
    if not reason or not reason.strip():
        raise ValidationError("reason is required")
    await get_staff_member(session, staff_id)

    async with locks.hold(session, staff_id, day):
        if not force_create:
            overlapping = await find_overlapping_appointments(session, staff_id, day, start_time, end_time)
            if overlapping:
                conflicts = [
                    Conflict(
                        type=DOUBLE_BOOKED,
                        reason=f"{a.start_time} - {a.end_time} {s.display_name}",
                        details={
                            "appointment_id": a.id,
                            "time": f"{a.start_time} - {a.end_time}",
                            "service": s.display_name,
                            "customer_name": a.user_name,
                        },
                    )
                    for a, s in overlapping
                ]
                raise ConflictError(
                    "Appointments overlap the selected time. Create the unavailability anyway?",
                    conflicts,
                )

        record = StaffAvailability(
            staff_id=staff_id,
            date=day,
            start_time=start_time,
            end_time=end_time,
            reason=reason.strip(),
            recurring=recurring,
        )
        session.add(record)
        await persist(session)
    await session.refresh(record)
    logger.info("Unavailability %s created for staff %s on %s %s-%s", record.id, staff_id, day, start_time, end_time)
    await recorder.record_audit(
        entity_type=ENTITY_STAFF_AVAILABILITY,
        entity_id=record.id,
        action=AuditAction.CREATE.value,
        actor=actor,
        new_value=_snapshot(record),
    )
    return record


async def update_unavailability(
    session: AsyncSession,
    record_id: str,
    start_time: str | None = None,
    end_time: str | None = None,
    reason: str | None = None,
    recurring: bool | None = None,
    *,
    recorder: AuditRecorder,
    actor: Actor = SYSTEM_ACTOR,
) -> StaffAvailability:
    """Edit a window in place; one UPDATE audit entry per field that changed."""
    record = await session.get(StaffAvailability, record_id)
    if record is None:
        raise NotFoundError("Unavailability record not found")
    validate_range(start_time or record.start_time, end_time or record.end_time)
    if reason is not None and not reason.strip():
        raise ValidationError("reason must not be empty")

    updates = {
        "start_time": start_time,
        "end_time": end_time,
        "reason": reason.strip() if reason is not None else None,
        "recurring": recurring,
    }
    changes = []
    for name, value in updates.items():
        old = getattr(record, name)
        if value is not None and value != old:
            setattr(record, name, value)
            changes.append((name, old, value))
    session.add(record)
    await persist(session)

    for name, old, value in changes:
        await recorder.record_audit(
            entity_type=ENTITY_STAFF_AVAILABILITY,
            entity_id=record.id,
            action=AuditAction.UPDATE.value,
            actor=actor,
            field_changed=_AUDIT_FIELDS[name],
            old_value=old,
            new_value=value,
        )
    return record


async def delete_unavailability(
    session: AsyncSession,
    record_id: str,
    *,
    recorder: AuditRecorder,
    actor: Actor = SYSTEM_ACTOR,
) -> None:
    record = await session.get(StaffAvailability, record_id)
    if record is None:
        raise NotFoundError("Unavailability record not found")
    snapshot = _snapshot(record)
    await session.delete(record)
    await persist(session)
    logger.info("Unavailability %s deleted by %s", record_id, actor.name)
    await recorder.record_audit(
        entity_type=ENTITY_STAFF_AVAILABILITY,
        entity_id=record_id,
        action=AuditAction.DELETE.value,
        actor=actor,
        old_value=snapshot,
    )
