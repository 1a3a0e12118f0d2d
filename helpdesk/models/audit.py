from datetime import datetime
from enum import Enum

from sqlmodel import Field, SQLModel

from helpdesk.models.common import new_id, utc_naive_now


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ASSIGNED = "ASSIGNED"
    REASSIGNED = "REASSIGNED"
    UNASSIGNED = "UNASSIGNED"
    STATUS_CHANGE = "STATUS_CHANGE"


class HistoryAction(str, Enum):
    CREATED = "CREATED"
    ASSIGNED = "ASSIGNED"
    REASSIGNED = "REASSIGNED"
    UNASSIGNED = "UNASSIGNED"
    STATUS_CHANGED = "STATUS_CHANGED"
    CANCELLED = "CANCELLED"


class AuditLog(SQLModel, table=True):
    """Immutable record of one field mutation. Append-only."""

    __tablename__ = "audit_logs"
    id: str = Field(default_factory=new_id, primary_key=True)
    entity_type: str = Field(index=True)  # APPOINTMENT, STAFF_AVAILABILITY
    entity_id: str = Field(index=True)
    action: str
    performed_by: str
    performed_by_name: str
    field_changed: str | None = None
    old_value: str | None = None
    new_value: str | None = None
    created_at: datetime = Field(default_factory=utc_naive_now, index=True)


class AppointmentHistory(SQLModel, table=True):
    """Human-readable timeline entry for one appointment."""

    __tablename__ = "appointment_history"
    id: str = Field(default_factory=new_id, primary_key=True)
    # No foreign key; appointments are never deleted
    appointment_id: str = Field(index=True)
    action: str
    performed_by: str
    performed_by_name: str
    old_staff_id: str | None = None
    old_staff_name: str | None = None
    new_staff_id: str | None = None
    new_staff_name: str | None = None
    old_status: str | None = None
    new_status: str | None = None
    notes: str | None = None
    created_at: datetime = Field(default_factory=utc_naive_now, index=True)


class AppointmentHistoryPublic(SQLModel):
    id: str
    appointment_id: str
    action: str
    performed_by: str
    performed_by_name: str
    old_staff_id: str | None = None
    old_staff_name: str | None = None
    new_staff_id: str | None = None
    new_staff_name: str | None = None
    old_status: str | None = None
    new_status: str | None = None
    notes: str | None = None
    created_at: datetime
