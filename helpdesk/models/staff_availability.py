import datetime as dt
from datetime import datetime

from sqlmodel import Field, SQLModel

from helpdesk.models.common import new_id, utc_naive_now


class StaffAvailability(SQLModel, table=True):
    """A block of time on one calendar date during which a staff member cannot be assigned.

    ``recurring`` is a display hint only; no weekly occurrences are generated from it.
    """

    __tablename__ = "staff_availability"
    id: str = Field(default_factory=new_id, primary_key=True)
    staff_id: str = Field(foreign_key="users.id", index=True)
    date: dt.date = Field(index=True)
    start_time: str
    end_time: str
    reason: str
    recurring: bool = False
    created_at: datetime = Field(default_factory=utc_naive_now)


class StaffAvailabilityPublic(SQLModel):
    id: str
    staff_id: str
    staff_name: str | None = None
    date: dt.date
    start_time: str
    end_time: str
    reason: str
    recurring: bool
    created_at: datetime
