"""
Free evening (availability) schemas.
"""
import datetime as dt
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from movienight.schemas.auth import UserSummary


class FreeEveningRequest(BaseModel):
    """Accepts a date or a datetime; only the calendar date (in its own offset) is kept."""

    date: dt.date | dt.datetime

    def evening_date(self) -> dt.date:
        if isinstance(self.date, dt.datetime):
            return self.date.date()
        return self.date


class FreeEveningResponse(BaseModel):
    id: UUID
    user: UserSummary
    date: dt.date
    created_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)


class WeekDay(BaseModel):
    date: dt.date
    has_meeting: bool
    free_users: list[FreeEveningResponse]


class UpcomingWeekResponse(BaseModel):
    week_start: dt.date
    week_end: dt.date
    dates: list[WeekDay]


class MyFreeEveningsResponse(BaseModel):
    dates: list[dt.date]
