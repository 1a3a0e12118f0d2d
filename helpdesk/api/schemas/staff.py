from datetime import date
from typing import Any

from pydantic import BaseModel, Field

from helpdesk.models.appointment import AppointmentPublic
from helpdesk.models.staff_availability import StaffAvailabilityPublic


class UnavailabilityCreateRequest(BaseModel):
    staff_id: str
    date: date
    start_time: str
    end_time: str
    reason: str = Field(min_length=1)
    recurring: bool = False
    force_create: bool = False


class UnavailabilityUpdateRequest(BaseModel):
    start_time: str | None = None
    end_time: str | None = None
    reason: str | None = None
    recurring: bool | None = None


class CalendarResponse(BaseModel):
    appointments: list[AppointmentPublic]
    unavailability: list[StaffAvailabilityPublic]
    date_range: dict[str, Any]


class PublishRequest(BaseModel):
    type: str = Field(min_length=1)
    data: dict[str, Any]
    target_user_id: str | None = None
    target_role: str | None = None


class PublishResponse(BaseModel):
    success: bool = True
    sent: int
    connection_count: int
