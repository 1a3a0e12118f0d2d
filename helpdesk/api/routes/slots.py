from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.api.deps import get_session
from helpdesk.api.schemas.appointment import AvailableSlotsResponse, SlotInfo
from helpdesk.models.service import ServicePublic
from helpdesk.services.appointment_service import list_services
from helpdesk.services.slot_service import get_available_slots_for_date

router = APIRouter(tags=["slots"])


@router.get("/services", response_model=list[ServicePublic])
async def services(session: AsyncSession = Depends(get_session)) -> list[ServicePublic]:
    return [ServicePublic.model_validate(s, from_attributes=True) for s in await list_services(session)]


@router.get("/slots/available", response_model=AvailableSlotsResponse)
async def available_slots(
    date_param: date = Query(..., alias="date"),
    service_id: str = Query(...),
    session: AsyncSession = Depends(get_session),
) -> AvailableSlotsResponse:
    """Slot grid for the given date. Each slot has start_time, end_time (sized to the service) and available."""
    slots = await get_available_slots_for_date(session, date_param, service_id)
    return AvailableSlotsResponse(
        date=date_param.isoformat(),
        service_id=service_id,
        slots=[SlotInfo(start_time=s.start_time, end_time=s.end_time, available=s.available) for s in slots],
    )
