from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core.db import get_session
from helpdesk.core.security import decode_access_token
from helpdesk.models.user import User
from helpdesk.services.audit_service import SYSTEM_ACTOR, Actor, AuditRecorder
from helpdesk.services.notification_hub import NotificationHub
from helpdesk.services.schedule_locks import ScheduleLocks

bearer = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _token_subject(credentials: HTTPAuthorizationCredentials | None) -> str | None:
    if not credentials or credentials.scheme.lower() != "bearer":
        return None
    return decode_access_token(credentials.credentials)


async def get_current_user(
    session: AsyncSession = Depends(get_session),
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> User:
    if not credentials:
        raise _unauthorized("Missing or invalid authorization header")
    user_id = _token_subject(credentials)
    if not user_id:
        raise _unauthorized("Invalid or expired token")
    user = await session.get(User, user_id)
    if not user:
        raise _unauthorized("User not found")
    return user


async def get_optional_user(
    session: AsyncSession = Depends(get_session),
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> User | None:
    """The bearer's user when a valid token is sent; anonymous callers get None."""
    user_id = _token_subject(credentials)
    if not user_id:
        return None
    return await session.get(User, user_id)


def get_hub(request: Request) -> NotificationHub:
    return request.app.state.notification_hub


def get_recorder(request: Request) -> AuditRecorder:
    return request.app.state.audit_recorder


def get_locks(request: Request) -> ScheduleLocks:
    return request.app.state.schedule_locks


def resolve_actor(
    user: User | None,
    performed_by: str | None = None,
    performed_by_name: str | None = None,
) -> Actor:
    """Authenticated user first, then the caller-supplied identity, then SYSTEM."""
    if user is not None:
        return Actor(id=user.id, name=user.name)
    if performed_by:
        return Actor(id=performed_by, name=performed_by_name or performed_by)
    return SYSTEM_ACTOR
