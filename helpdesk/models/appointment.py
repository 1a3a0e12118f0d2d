import datetime as dt
from datetime import datetime
from enum import Enum

from sqlmodel import Field, SQLModel

from helpdesk.models.common import new_id, utc_naive_now


class AppointmentStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    id: str = Field(default_factory=new_id, primary_key=True)
    date: dt.date = Field(index=True)
    start_time: str  # HH:MM
    end_time: str  # HH:MM, start_time + service duration
    user_name: str
    user_phone: str
    user_email: str | None = None
    description: str
    status: str = Field(default=AppointmentStatus.PENDING.value, index=True)
    service_id: str = Field(foreign_key="services.id", index=True)
    staff_id: str | None = Field(default=None, foreign_key="users.id", index=True)
    created_at: datetime = Field(default_factory=utc_naive_now)
    updated_at: datetime = Field(default_factory=utc_naive_now)

    def touch(self) -> None:
        self.updated_at = utc_naive_now()


class AppointmentCreate(SQLModel):
    service_id: str
    date: dt.date
    start_time: str
    user_name: str
    user_phone: str
    user_email: str | None = None
    description: str


class AppointmentPublic(SQLModel):
    id: str
    date: dt.date
    start_time: str
    end_time: str
    user_name: str
    user_phone: str
    user_email: str | None = None
    description: str
    status: str
    service_id: str
    service_name: str | None = None
    staff_id: str | None = None
    staff_name: str | None = None
    created_at: datetime
    updated_at: datetime
