from datetime import date, datetime

from pydantic import BaseModel

from helpdesk.models.service import ServicePublic
from helpdesk.models.user import UserPublic


class DashboardResponse(BaseModel):
    status: str  # open, limited, closed
    available_staff: int
    total_staff: int
    today_slots: int
    services: list[ServicePublic]


class AppointmentCounts(BaseModel):
    total: int
    pending: int
    confirmed: int
    completed: int
    cancelled: int


class Workload(BaseModel):
    total_hours: float
    scheduled_slots: int
    available_slots: int
    utilization_rate: float


class Performance(BaseModel):
    completion_rate: float
    avg_completion_days: float | None = None
    on_time_rate: float


class ReasonSummary(BaseModel):
    reason: str
    count: int
    hours: float


class UnavailabilitySummary(BaseModel):
    total: int
    total_hours: float
    reasons: list[ReasonSummary]


class UpcomingAppointment(BaseModel):
    id: str
    date: date
    start_time: str
    end_time: str
    user_name: str
    status: str
    service_name: str


class ActivityEntry(BaseModel):
    id: str
    appointment_id: str
    action: str
    performed_by: str
    performed_by_name: str
    notes: str | None = None
    created_at: datetime
    customer_name: str
    service_name: str


class StaffMetricsResponse(BaseModel):
    staff: UserPublic
    start_date: date
    end_date: date
    appointments: AppointmentCounts
    workload: Workload
    performance: Performance
    unavailability: UnavailabilitySummary
    upcoming: list[UpcomingAppointment]
    recent_activity: list[ActivityEntry]
