from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from helpdesk.api.deps import get_hub
from helpdesk.api.schemas.staff import PublishRequest, PublishResponse
from helpdesk.services.notification_hub import NotificationEvent, NotificationHub

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/subscribe")
async def subscribe(
    user_id: str = Query(..., min_length=1),
    role: str = Query(..., min_length=1),
    hub: NotificationHub = Depends(get_hub),
) -> StreamingResponse:
    """Server-Sent Events stream of appointment notifications for this user/role."""
    subscription = await hub.subscribe(user_id, role)
    return StreamingResponse(
        subscription.stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache, no-transform",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@router.post("/publish", response_model=PublishResponse)
async def publish(
    body: PublishRequest,
    hub: NotificationHub = Depends(get_hub),
) -> PublishResponse:
    sent = await hub.broadcast(
        NotificationEvent(
            type=body.type,
            data=body.data,
            target_user_id=body.target_user_id,
            target_role=body.target_role,
        )
    )
    return PublishResponse(sent=sent, connection_count=hub.connection_count())
