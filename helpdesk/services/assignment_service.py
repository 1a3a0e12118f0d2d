"""Staff assignment lifecycle of an appointment.

The transition is derived at the moment of mutation from the previous and the new
staff id; it is never stored on the appointment:

* no staff -> staff: ``ASSIGNED``
* staff -> another staff: ``REASSIGNED``
* staff -> nobody: ``UNASSIGNED``
* same staff again, or nobody -> nobody: no-op, nothing is written or emitted
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core.db import persist
from helpdesk.core.errors import ConflictError
from helpdesk.models.appointment import Appointment
from helpdesk.models.audit import AuditAction, HistoryAction
from helpdesk.models.user import User
from helpdesk.services.appointment_service import STAFF_ROLE, get_appointment
from helpdesk.services.audit_service import Actor, AuditRecorder, get_staff_name
from helpdesk.services.availability_service import check_staff_availability
from helpdesk.services.notification_hub import NotificationEvent, NotificationHub
from helpdesk.services.schedule_locks import ScheduleLocks
from helpdesk.services.staff_service import get_staff_member

logger = logging.getLogger(__name__)

ASSIGNED = "ASSIGNED"
REASSIGNED = "REASSIGNED"
UNASSIGNED = "UNASSIGNED"


@dataclass(frozen=True)
class StaffRef:
    id: str
    name: str

    @classmethod
    def of(cls, user: User) -> "StaffRef":
        return cls(id=user.id, name=user.name)


@dataclass
class AssignmentChange:
    appointment_id: str
    action: str
    old_staff_id: str | None
    old_staff_name: str | None
    new_staff_id: str | None
    new_staff_name: str | None


def assignment_action(old_staff_id: str | None, new_staff_id: str | None) -> str | None:
    if old_staff_id == new_staff_id:
        return None
    if old_staff_id is None:
        return ASSIGNED
    if new_staff_id is None:
        return UNASSIGNED
    return REASSIGNED


def assignment_notes(change: AssignmentChange, bulk: bool = False) -> str:
    if change.action == ASSIGNED:
        notes = f"Assigned to {change.new_staff_name}"
    elif change.action == REASSIGNED:
        notes = f"Reassigned from {change.old_staff_name} to {change.new_staff_name}"
    else:
        notes = f"Unassigned from {change.old_staff_name}"
    if bulk:
        return f"Bulk {notes[0].lower()}{notes[1:]}"
    return notes


async def apply_assignment(
    session: AsyncSession,
    appointment: Appointment,
    staff: StaffRef | None,
    *,
    locks: ScheduleLocks,
    force: bool = False,
) -> AssignmentChange | None:
    """Check availability and persist the new staff member.

    The appointment is re-read under its own lock (and row lock on PostgreSQL) so
    concurrent assignments of the same appointment see each other's result; the
    availability check and write also hold the new staff member's (staff, day) lock.
    Returns None when nothing changes. Raises ConflictError unless ``force``.
    """
    async with locks.hold_appointment(appointment.id):
        await session.refresh(appointment, with_for_update=True)
        old_staff_id = appointment.staff_id
        action = assignment_action(old_staff_id, staff.id if staff else None)
        if action is None:
            # Release the row lock
            await persist(session)
            return None

        if staff is None:
            appointment.staff_id = None
            appointment.touch()
            session.add(appointment)
            await persist(session)
        else:
            async with locks.hold(session, staff.id, appointment.date):
                if not force:
                    check = await check_staff_availability(
                        session,
                        staff.id,
                        appointment.date,
                        appointment.start_time,
                        appointment.end_time,
                        exclude_appointment_id=appointment.id,
                    )
                    if not check.available:
                        raise ConflictError(f"{staff.name} is not available at this time", check.conflicts)
                appointment.staff_id = staff.id
                appointment.touch()
                session.add(appointment)
                await persist(session)

    return AssignmentChange(
        appointment_id=appointment.id,
        action=action,
        old_staff_id=old_staff_id,
        old_staff_name=await get_staff_name(session, old_staff_id),
        new_staff_id=staff.id if staff else None,
        new_staff_name=staff.name if staff else None,
    )


async def record_assignment(
    change: AssignmentChange,
    actor: Actor,
    recorder: AuditRecorder,
    *,
    bulk: bool = False,
) -> None:
    await recorder.record_audit(
        entity_id=change.appointment_id,
        action=AuditAction(change.action).value,
        actor=actor,
        field_changed="staffId",
        old_value=change.old_staff_id,
        new_value=change.new_staff_id,
    )
    await recorder.record_history(
        appointment_id=change.appointment_id,
        action=HistoryAction(change.action).value,
        actor=actor,
        old_staff_id=change.old_staff_id,
        old_staff_name=change.old_staff_name,
        new_staff_id=change.new_staff_id,
        new_staff_name=change.new_staff_name,
        notes=assignment_notes(change, bulk=bulk),
    )


async def assign_staff(
    session: AsyncSession,
    appointment_id: str,
    staff_id: str | None,
    actor: Actor,
    *,
    recorder: AuditRecorder,
    hub: NotificationHub,
    locks: ScheduleLocks,
    force: bool = False,
) -> Appointment:
    """Set (or clear, with ``staff_id=None``) the staff member on an appointment.

    Raises NotFoundError, InvalidStaffError, or ConflictError when the staff member
    is booked or unavailable and ``force`` is not set. Audit, history and the
    ``appointment:assigned`` notification are best-effort once the change is saved.
    """
    appointment = await get_appointment(session, appointment_id)
    staff = StaffRef.of(await get_staff_member(session, staff_id)) if staff_id else None

    change = await apply_assignment(session, appointment, staff, locks=locks, force=force)
    if change is None:
        logger.debug("Appointment %s already has staff %s, nothing to do", appointment_id, staff_id)
        return appointment

    logger.info("Appointment %s %s: %s -> %s", appointment_id, change.action, change.old_staff_id, change.new_staff_id)
    await record_assignment(change, actor, recorder)
    await hub.publish(
        NotificationEvent(
            type="appointment:assigned",
            data={
                "appointment_id": appointment.id,
                "action": change.action,
                "old_staff_name": change.old_staff_name,
                "new_staff_name": change.new_staff_name,
                "date": appointment.date.isoformat(),
                "start_time": appointment.start_time,
                "performed_by_name": actor.name,
            },
            target_role=STAFF_ROLE,
        )
    )
    return appointment
