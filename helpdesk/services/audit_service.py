import json
import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from helpdesk.core.errors import ObservabilityError
from helpdesk.models.audit import AppointmentHistory, AuditLog
from helpdesk.models.user import User

logger = logging.getLogger(__name__)

ENTITY_APPOINTMENT = "APPOINTMENT"


@dataclass(frozen=True)
class Actor:
    """Who performed a mutation, as written into audit and history rows."""

    id: str = "SYSTEM"
    name: str = "System"


SYSTEM_ACTOR = Actor()


def stringify_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return str(value)


class AuditRecorder:
    """Best-effort writer for the audit log and appointment history streams.

    Each entry is written in its own session and committed on its own, so a failed
    write never touches the caller's transaction. Failures are logged and swallowed.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _write(self, entry: AuditLog | AppointmentHistory) -> None:
        try:
            async with self._session_factory() as session:
                session.add(entry)
                await session.commit()
        except SQLAlchemyError as e:
            raise ObservabilityError(f"Failed to write {type(entry).__name__}: {e}") from e

    async def record_audit(
        self,
        *,
        entity_id: str,
        action: str,
        actor: Actor,
        entity_type: str = ENTITY_APPOINTMENT,
        field_changed: str | None = None,
        old_value: Any = None,
        new_value: Any = None,
    ) -> None:
        entry = AuditLog(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            performed_by=actor.id,
            performed_by_name=actor.name,
            field_changed=field_changed,
            old_value=stringify_value(old_value),
            new_value=stringify_value(new_value),
        )
        try:
            await self._write(entry)
        except Exception as e:
            logger.exception("Audit log write failed (%s %s %s): %s", entity_type, entity_id, action, e)

    async def record_history(
        self,
        *,
        appointment_id: str,
        action: str,
        actor: Actor,
        old_staff_id: str | None = None,
        old_staff_name: str | None = None,
        new_staff_id: str | None = None,
        new_staff_name: str | None = None,
        old_status: str | None = None,
        new_status: str | None = None,
        notes: str | None = None,
    ) -> None:
        entry = AppointmentHistory(
            appointment_id=appointment_id,
            action=action,
            performed_by=actor.id,
            performed_by_name=actor.name,
            old_staff_id=old_staff_id,
            old_staff_name=old_staff_name,
            new_staff_id=new_staff_id,
            new_staff_name=new_staff_name,
            old_status=old_status,
            new_status=new_status,
            notes=notes,
        )
        try:
            await self._write(entry)
        except Exception as e:
            logger.exception("Appointment history write failed (%s %s): %s", appointment_id, action, e)


async def list_history(session: AsyncSession, appointment_id: str) -> list[AppointmentHistory]:
    """Timeline of one appointment, newest first."""
    result = await session.execute(
        select(AppointmentHistory)
        .where(AppointmentHistory.appointment_id == appointment_id)
        .order_by(AppointmentHistory.created_at.desc())
    )
    return list(result.scalars().all())


async def list_audit_logs(
    session: AsyncSession, entity_id: str, entity_type: str = ENTITY_APPOINTMENT
) -> list[AuditLog]:
    result = await session.execute(
        select(AuditLog)
        .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
        .order_by(AuditLog.created_at.desc())
    )
    return list(result.scalars().all())


async def get_staff_name(session: AsyncSession, staff_id: str | None) -> str | None:
    if not staff_id:
        return None
    try:
        result = await session.execute(select(User.name).where(User.id == staff_id))
        return result.scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.exception("Failed to get staff name for %s: %s", staff_id, e)
        return None
