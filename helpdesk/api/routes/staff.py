from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.api.deps import get_session
from helpdesk.api.schemas.appointment import AvailabilityCheckRequest, AvailabilityCheckResponse
from helpdesk.api.schemas.dashboard import StaffMetricsResponse
from helpdesk.models.user import UserPublic
from helpdesk.services.auth_service import user_to_public
from helpdesk.services.availability_service import check_staff_availability
from helpdesk.services.dashboard_service import get_staff_metrics
from helpdesk.services.staff_service import list_staff

router = APIRouter(prefix="/staff", tags=["staff"])


@router.get("", response_model=list[UserPublic])
async def staff_members(session: AsyncSession = Depends(get_session)) -> list[UserPublic]:
    return [user_to_public(u) for u in await list_staff(session)]


@router.post("/validate-availability", response_model=AvailabilityCheckResponse)
async def validate_availability(
    body: AvailabilityCheckRequest,
    session: AsyncSession = Depends(get_session),
) -> AvailabilityCheckResponse:
    result = await check_staff_availability(
        session,
        body.staff_id,
        body.date,
        body.start_time,
        body.end_time,
        exclude_appointment_id=body.exclude_appointment_id,
    )
    return AvailabilityCheckResponse(
        available=result.available,
        conflicts=[c.to_dict() for c in result.conflicts],
    )


@router.get("/{staff_id}/metrics", response_model=StaffMetricsResponse)
async def staff_metrics(
    staff_id: str,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    session: AsyncSession = Depends(get_session),
) -> StaffMetricsResponse:
    """Workload between two dates; defaults to this week and next."""
    metrics = await get_staff_metrics(session, staff_id, start_date, end_date)
    return StaffMetricsResponse.model_validate(metrics, from_attributes=True)
