import logging
from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.api.deps import (
    get_hub,
    get_locks,
    get_optional_user,
    get_recorder,
    get_session,
    resolve_actor,
)
from helpdesk.api.schemas.appointment import (
    AssignStaffRequest,
    BookAppointmentRequest,
    BulkActionRequest,
    BulkActionResponse,
    ChangeStatusRequest,
    StaffCreateAppointmentRequest,
)
from helpdesk.api.schemas.staff import CalendarResponse
from helpdesk.api.routes.staff_availability import to_availability_public
from helpdesk.models.appointment import Appointment, AppointmentCreate, AppointmentPublic
from helpdesk.models.audit import AppointmentHistoryPublic
from helpdesk.models.service import Service
from helpdesk.models.user import User
from helpdesk.services.appointment_service import (
    change_status,
    create_appointment,
    create_staff_appointment,
    get_appointment,
    get_appointment_detail,
    list_appointments,
    list_calendar,
)
from helpdesk.services.assignment_service import assign_staff
from helpdesk.services.audit_service import AuditRecorder, list_history
from helpdesk.services.bulk_service import bulk_apply
from helpdesk.services.notification_hub import NotificationHub
from helpdesk.services.schedule_locks import ScheduleLocks

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/appointments", tags=["appointments"])


def _to_public(a: Appointment, service: Service | None = None, staff_name: str | None = None) -> AppointmentPublic:
    return AppointmentPublic(
        id=a.id,
        date=a.date,
        start_time=a.start_time,
        end_time=a.end_time,
        user_name=a.user_name,
        user_phone=a.user_phone,
        user_email=a.user_email,
        description=a.description,
        status=a.status,
        service_id=a.service_id,
        service_name=service.display_name if service else None,
        staff_id=a.staff_id,
        staff_name=staff_name,
        created_at=a.created_at,
        updated_at=a.updated_at,
    )


async def _detail(session: AsyncSession, appointment_id: str) -> AppointmentPublic:
    appointment, service, staff_name = await get_appointment_detail(session, appointment_id)
    return _to_public(appointment, service, staff_name)


@router.post("", response_model=AppointmentPublic, status_code=status.HTTP_201_CREATED)
async def book_appointment(
    body: BookAppointmentRequest,
    session: AsyncSession = Depends(get_session),
) -> AppointmentPublic:
    data = AppointmentCreate(**body.model_dump())
    appointment = await create_appointment(session, data)
    return await _detail(session, appointment.id)


@router.get("", response_model=list[AppointmentPublic])
async def list_all_appointments(
    status_filter: str | None = Query(None, alias="status"),
    staff_id: str | None = Query(None),
    date_param: date | None = Query(None, alias="date"),
    session: AsyncSession = Depends(get_session),
) -> list[AppointmentPublic]:
    rows = await list_appointments(session, status=status_filter, staff_id=staff_id, day=date_param)
    return [_to_public(a, s, n) for a, s, n in rows]


@router.get("/calendar", response_model=CalendarResponse)
async def calendar(
    start_date: date = Query(...),
    end_date: date = Query(...),
    staff_id: str | None = Query(None),
    view: str = Query("staff"),
    session: AsyncSession = Depends(get_session),
) -> CalendarResponse:
    appointments, unavailability = await list_calendar(session, start_date, end_date, staff_id)
    return CalendarResponse(
        appointments=[_to_public(a, s, n) for a, s, n in appointments],
        unavailability=[to_availability_public(r, u) for r, u in unavailability],
        date_range={"start": start_date.isoformat(), "end": end_date.isoformat(), "view": view},
    )


@router.post("/bulk", response_model=BulkActionResponse)
async def bulk_action(
    body: BulkActionRequest,
    session: AsyncSession = Depends(get_session),
    current_user: User | None = Depends(get_optional_user),
    recorder: AuditRecorder = Depends(get_recorder),
    hub: NotificationHub = Depends(get_hub),
    locks: ScheduleLocks = Depends(get_locks),
) -> BulkActionResponse:
    actor = resolve_actor(current_user, body.performed_by, body.performed_by_name)
    result = await bulk_apply(
        session,
        body.action,
        body.appointment_ids,
        actor,
        recorder=recorder,
        hub=hub,
        locks=locks,
        staff_id=body.staff_id,
        status=body.status,
        force=body.force,
    )
    return BulkActionResponse(
        success=len(result.success),
        failed=len(result.failed),
        total=len(body.appointment_ids),
        results=result.to_dict(),
    )


@router.post("/staff-create", response_model=AppointmentPublic, status_code=status.HTTP_201_CREATED)
async def staff_create_appointment(
    body: StaffCreateAppointmentRequest,
    session: AsyncSession = Depends(get_session),
    current_user: User | None = Depends(get_optional_user),
    recorder: AuditRecorder = Depends(get_recorder),
    hub: NotificationHub = Depends(get_hub),
    locks: ScheduleLocks = Depends(get_locks),
) -> AppointmentPublic:
    actor = resolve_actor(current_user, body.performed_by, body.performed_by_name)
    data = AppointmentCreate(**body.model_dump(include=set(AppointmentCreate.model_fields)))
    appointment = await create_staff_appointment(
        session,
        data,
        body.staff_id,
        actor,
        recorder=recorder,
        hub=hub,
        locks=locks,
        force=body.force,
    )
    return await _detail(session, appointment.id)


@router.get("/{appointment_id}", response_model=AppointmentPublic)
async def get_one(
    appointment_id: str,
    session: AsyncSession = Depends(get_session),
) -> AppointmentPublic:
    return await _detail(session, appointment_id)


@router.patch("/{appointment_id}", response_model=AppointmentPublic)
async def assign_appointment_staff(
    appointment_id: str,
    body: AssignStaffRequest,
    session: AsyncSession = Depends(get_session),
    current_user: User | None = Depends(get_optional_user),
    recorder: AuditRecorder = Depends(get_recorder),
    hub: NotificationHub = Depends(get_hub),
    locks: ScheduleLocks = Depends(get_locks),
) -> AppointmentPublic:
    actor = resolve_actor(current_user, body.performed_by, body.performed_by_name)
    await assign_staff(
        session,
        appointment_id,
        body.staff_id or None,
        actor,
        recorder=recorder,
        hub=hub,
        locks=locks,
        force=body.force,
    )
    return await _detail(session, appointment_id)


@router.patch("/{appointment_id}/status", response_model=AppointmentPublic)
async def change_appointment_status(
    appointment_id: str,
    body: ChangeStatusRequest,
    session: AsyncSession = Depends(get_session),
    current_user: User | None = Depends(get_optional_user),
    recorder: AuditRecorder = Depends(get_recorder),
    hub: NotificationHub = Depends(get_hub),
    locks: ScheduleLocks = Depends(get_locks),
) -> AppointmentPublic:
    actor = resolve_actor(current_user, body.performed_by, body.performed_by_name)
    await change_status(session, appointment_id, body.status, actor, recorder=recorder, hub=hub, locks=locks)
    return await _detail(session, appointment_id)


@router.get("/{appointment_id}/history", response_model=list[AppointmentHistoryPublic])
async def appointment_history(
    appointment_id: str,
    session: AsyncSession = Depends(get_session),
) -> list[AppointmentHistoryPublic]:
    await get_appointment(session, appointment_id)
    entries = await list_history(session, appointment_id)
    return [AppointmentHistoryPublic.model_validate(e, from_attributes=True) for e in entries]
