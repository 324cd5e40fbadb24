import datetime as dt
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class SeminarStatus(str, Enum):
    PAST = "past"
    ONGOING = "ongoing"
    UPCOMING = "upcoming"


def seminar_status(date: dt.date, today: Optional[dt.date] = None) -> SeminarStatus:
    """Day-granularity status; time of day is ignored"""
    today = today or dt.date.today()
    if date < today:
        return SeminarStatus.PAST
    if date == today:
        return SeminarStatus.ONGOING
    return SeminarStatus.UPCOMING


class Seminar(BaseModel):
    """Stored under resources/seminar/{id}; status is never stored"""
    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    type: str
    description: str = ""
    date: dt.date
    time: str
    location: str
    spot_count: int = Field(0, alias="spots", ge=0)
    registration_link: str = Field("", alias="link")

    def to_stored(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

    def status_on(self, today: Optional[dt.date] = None) -> SeminarStatus:
        return seminar_status(self.date, today)


class SeminarCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str = ""
    description: str = ""
    date: Optional[dt.date] = None
    time: str = ""
    location: str = ""
    spot_count: int = Field(0, alias="spots", ge=0)
    registration_link: str = Field("", alias="link")


class SeminarView(Seminar):
    status: SeminarStatus
