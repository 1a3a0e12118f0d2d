from datetime import datetime
from enum import Enum

from sqlmodel import Field, SQLModel

from helpdesk.models.common import new_id, utc_naive_now


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    STAFF = "STAFF"
    USER = "USER"


# Roles that may be assigned to appointments
STAFF_ROLES = (UserRole.STAFF.value, UserRole.ADMIN.value)


class UserBase(SQLModel):
    email: str = Field(unique=True, index=True)
    name: str
    role: str = Field(default=UserRole.USER.value, index=True)


class User(UserBase, table=True):
    __tablename__ = "users"
    id: str = Field(default_factory=new_id, primary_key=True)
    hashed_password: str
    created_at: datetime = Field(default_factory=utc_naive_now)


class UserCreate(SQLModel):
    email: str
    password: str
    name: str
    role: UserRole = UserRole.USER


class UserPublic(SQLModel):
    id: str
    email: str
    name: str
    role: str
