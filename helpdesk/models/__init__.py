from helpdesk.models.user import STAFF_ROLES, User, UserCreate, UserPublic, UserRole
from helpdesk.models.service import Service, ServicePublic
from helpdesk.models.appointment import (
    Appointment,
    AppointmentCreate,
    AppointmentPublic,
    AppointmentStatus,
)
from helpdesk.models.staff_availability import StaffAvailability, StaffAvailabilityPublic
from helpdesk.models.audit import (
    AppointmentHistory,
    AppointmentHistoryPublic,
    AuditAction,
    AuditLog,
    HistoryAction,
)

__all__ = [
    "STAFF_ROLES",
    "User",
    "UserCreate",
    "UserPublic",
    "UserRole",
    "Service",
    "ServicePublic",
    "Appointment",
    "AppointmentCreate",
    "AppointmentPublic",
    "AppointmentStatus",
    "StaffAvailability",
    "StaffAvailabilityPublic",
    "AppointmentHistory",
    "AppointmentHistoryPublic",
    "AuditAction",
    "AuditLog",
    "HistoryAction",
]
