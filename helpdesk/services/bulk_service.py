import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core.errors import ConflictError, HelpdeskError, ValidationError
from helpdesk.models.appointment import Appointment, AppointmentStatus
from helpdesk.services.appointment_service import (
    STAFF_ROLE,
    apply_status,
    normalize_status,
    record_status_change,
)
from helpdesk.services.assignment_service import StaffRef, apply_assignment, record_assignment
from helpdesk.services.audit_service import Actor, AuditRecorder
from helpdesk.services.notification_hub import NotificationEvent, NotificationHub
from helpdesk.services.schedule_locks import ScheduleLocks
from helpdesk.services.staff_service import get_staff_member

logger = logging.getLogger(__name__)

ASSIGN = "assign"
CHANGE_STATUS = "change_status"
CANCEL = "cancel"
BULK_ACTIONS = (ASSIGN, CHANGE_STATUS, CANCEL)


@dataclass
class BulkFailure:
    id: str
    reason: str


@dataclass
class BulkResult:
    success: list[str] = field(default_factory=list)
    failed: list[BulkFailure] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": list(self.success),
            "failed": [asdict(f) for f in self.failed],
        }


def _conflict_reason(e: ConflictError) -> str:
    reasons = "; ".join(c.reason for c in e.conflicts)
    return f"Staff not available: {reasons}" if reasons else e.message


async def bulk_apply(
    session: AsyncSession,
    action: str,
    appointment_ids: list[str],
    actor: Actor,
    *,
    recorder: AuditRecorder,
    hub: NotificationHub,
    locks: ScheduleLocks,
    staff_id: str | None = None,
    status: str | None = None,
    force: bool = False,
) -> BulkResult:
    """Apply one action to many appointments, one at a time.

    Request-level problems (unknown action, empty id list, missing staff_id or
    status, invalid staff) raise before anything is touched. After that every id
    is independent: a missing appointment, a conflict or a storage error is
    recorded in ``failed`` and the loop moves on. A single aggregate
    ``appointment:bulk_update`` event is published at the end.
    """
    if action not in BULK_ACTIONS:
        raise ValidationError("Invalid action. Use: assign, change_status, or cancel")
    if not appointment_ids:
        raise ValidationError("At least one appointment ID is required")

    staff = None
    new_status = None
    if action == ASSIGN:
        if not staff_id:
            raise ValidationError("staff_id is required for assign action")
        staff = StaffRef.of(await get_staff_member(session, staff_id))
    elif action == CHANGE_STATUS:
        if not status:
            raise ValidationError("status is required for change_status action")
        new_status = normalize_status(status)
    else:
        new_status = AppointmentStatus.CANCELLED.value

    result = BulkResult()
    for appointment_id in appointment_ids:
        try:
            appointment = await session.get(Appointment, appointment_id)
            if appointment is None:
                result.failed.append(BulkFailure(id=appointment_id, reason="Appointment not found"))
                continue

            if action == ASSIGN:
                change = await apply_assignment(session, appointment, staff, locks=locks, force=force)
                if change is not None:
                    await record_assignment(change, actor, recorder, bulk=True)
            else:
                status_change = await apply_status(session, appointment, new_status, locks=locks)
                await record_status_change(
                    status_change, actor, recorder, bulk=True, cancellation=action == CANCEL
                )
            result.success.append(appointment_id)
        except ConflictError as e:
            await session.rollback()
            result.failed.append(BulkFailure(id=appointment_id, reason=_conflict_reason(e)))
        except HelpdeskError as e:
            await session.rollback()
            logger.warning("Bulk %s failed for appointment %s: %s", action, appointment_id, e.message)
            reason = e.message if isinstance(e, ValidationError) else "Update failed"
            result.failed.append(BulkFailure(id=appointment_id, reason=reason))
        except SQLAlchemyError as e:
            await session.rollback()
            logger.exception("Bulk %s failed for appointment %s: %s", action, appointment_id, e)
            result.failed.append(BulkFailure(id=appointment_id, reason="Update failed"))

    logger.info(
        "Bulk %s by %s: %d succeeded, %d failed",
        action, actor.name, len(result.success), len(result.failed),
    )
    await hub.publish(
        NotificationEvent(
            type="appointment:bulk_update",
            data={
                "action": action,
                "count": len(result.success),
                "performed_by_name": actor.name,
            },
            target_role=STAFF_ROLE,
        )
    )
    return result
