from sqlmodel import Field, SQLModel

from helpdesk.models.common import new_id


class Service(SQLModel, table=True):
    """A kind of help-desk visit; its duration sizes every slot booked for it."""

    __tablename__ = "services"
    id: str = Field(default_factory=new_id, primary_key=True)
    name: str = Field(unique=True)
    name_th: str | None = None
    description: str | None = None
    duration: int = Field(gt=0)  # minutes

    @property
    def display_name(self) -> str:
        return self.name_th or self.name


class ServicePublic(SQLModel):
    id: str
    name: str
    name_th: str | None = None
    description: str | None = None
    duration: int
