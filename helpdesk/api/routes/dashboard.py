from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.api.deps import get_session
from helpdesk.api.schemas.dashboard import DashboardResponse
from helpdesk.services.dashboard_service import get_dashboard_status

router = APIRouter(tags=["dashboard"])


@router.get("/dashboard", response_model=DashboardResponse)
async def dashboard(session: AsyncSession = Depends(get_session)) -> DashboardResponse:
    """Desk status right now (open, limited or closed), staffing and today's remaining slots."""
    board = await get_dashboard_status(session)
    return DashboardResponse.model_validate(board, from_attributes=True)
