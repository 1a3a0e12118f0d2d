from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.api.deps import get_locks, get_optional_user, get_recorder, get_session, resolve_actor
from helpdesk.api.schemas.staff import UnavailabilityCreateRequest, UnavailabilityUpdateRequest
from helpdesk.models.staff_availability import StaffAvailability, StaffAvailabilityPublic
from helpdesk.models.user import User
from helpdesk.services.audit_service import AuditRecorder, get_staff_name
from helpdesk.services.schedule_locks import ScheduleLocks
from helpdesk.services.staff_service import (
    create_unavailability,
    delete_unavailability,
    list_unavailability,
    update_unavailability,
)

router = APIRouter(prefix="/staff-availability", tags=["staff-availability"])


def to_availability_public(record: StaffAvailability, staff: User | None = None, staff_name: str | None = None) -> StaffAvailabilityPublic:
    return StaffAvailabilityPublic(
        id=record.id,
        staff_id=record.staff_id,
        staff_name=staff.name if staff else staff_name,
        date=record.date,
        start_time=record.start_time,
        end_time=record.end_time,
        reason=record.reason,
        recurring=record.recurring,
        created_at=record.created_at,
    )


@router.get("", response_model=list[StaffAvailabilityPublic])
async def list_availability(
    staff_id: str | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    session: AsyncSession = Depends(get_session),
) -> list[StaffAvailabilityPublic]:
    rows = await list_unavailability(session, staff_id, start_date, end_date)
    return [to_availability_public(r, u) for r, u in rows]


@router.post("", response_model=StaffAvailabilityPublic, status_code=status.HTTP_201_CREATED)
async def create_availability(
    body: UnavailabilityCreateRequest,
    session: AsyncSession = Depends(get_session),
    current_user: User | None = Depends(get_optional_user),
    recorder: AuditRecorder = Depends(get_recorder),
    locks: ScheduleLocks = Depends(get_locks),
) -> StaffAvailabilityPublic:
    """Block out time. Overlapping appointments answer 409 with the list unless ``force_create``."""
    record = await create_unavailability(
        session,
        staff_id=body.staff_id,
        day=body.date,
        start_time=body.start_time,
        end_time=body.end_time,
        reason=body.reason,
        recurring=body.recurring,
        force_create=body.force_create,
        locks=locks,
        recorder=recorder,
        actor=resolve_actor(current_user),
    )
    return to_availability_public(record, staff_name=await get_staff_name(session, record.staff_id))


@router.patch("/{record_id}", response_model=StaffAvailabilityPublic)
async def update_availability(
    record_id: str,
    body: UnavailabilityUpdateRequest,
    session: AsyncSession = Depends(get_session),
    current_user: User | None = Depends(get_optional_user),
    recorder: AuditRecorder = Depends(get_recorder),
) -> StaffAvailabilityPublic:
    record = await update_unavailability(
        session,
        record_id,
        start_time=body.start_time,
        end_time=body.end_time,
        reason=body.reason,
        recurring=body.recurring,
        recorder=recorder,
        actor=resolve_actor(current_user),
    )
    return to_availability_public(record, staff_name=await get_staff_name(session, record.staff_id))


@router.delete("/{record_id}")
async def delete_availability(
    record_id: str,
    session: AsyncSession = Depends(get_session),
    current_user: User | None = Depends(get_optional_user),
    recorder: AuditRecorder = Depends(get_recorder),
) -> dict:
    await delete_unavailability(session, record_id, recorder=recorder, actor=resolve_actor(current_user))
    return {"success": True}
