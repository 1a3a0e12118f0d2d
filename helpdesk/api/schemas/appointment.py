from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, EmailStr, Field


class SlotInfo(BaseModel):
    start_time: str
    end_time: str
    available: bool


class AvailableSlotsResponse(BaseModel):
    date: str  # YYYY-MM-DD
    service_id: str
    slots: list[SlotInfo]


class BookAppointmentRequest(BaseModel):
    service_id: str
    date: date
    start_time: str = Field(pattern=r"^\d{1,2}:\d{2}$")
    user_name: str = Field(min_length=1)
    user_phone: str = Field(min_length=1)
    user_email: EmailStr | None = None
    description: str = Field(min_length=1)


class StaffCreateAppointmentRequest(BookAppointmentRequest):
    staff_id: str
    performed_by: str | None = None
    performed_by_name: str | None = None
    force: bool = False


class AssignStaffRequest(BaseModel):
    staff_id: str | None = None
    force: bool = False
    performed_by: str | None = None
    performed_by_name: str | None = None


class ChangeStatusRequest(BaseModel):
    status: str
    performed_by: str | None = None
    performed_by_name: str | None = None


class BulkActionRequest(BaseModel):
    action: Literal["assign", "change_status", "cancel"]
    appointment_ids: list[str]
    staff_id: str | None = None
    status: str | None = None
    force: bool = False
    performed_by: str | None = None
    performed_by_name: str | None = None


class BulkFailureOut(BaseModel):
    id: str
    reason: str


class BulkResults(BaseModel):
    success: list[str]
    failed: list[BulkFailureOut]


class BulkActionResponse(BaseModel):
    success: int
    failed: int
    total: int
    results: BulkResults


class ConflictOut(BaseModel):
    type: Literal["unavailable", "double_booked"]
    reason: str
    details: dict[str, Any] = {}


class AvailabilityCheckRequest(BaseModel):
    staff_id: str
    date: date
    start_time: str
    end_time: str
    exclude_appointment_id: str | None = None


class AvailabilityCheckResponse(BaseModel):
    available: bool
    conflicts: list[ConflictOut]
