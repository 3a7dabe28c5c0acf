import uuid
import datetime as dt
from pydantic import BaseModel, Field
from app.core.timecalc import Weekday, format_minutes, render_date, render_datetime
from app.modules.availability.models import Availability, Session

HHMM = r"^([01]?\d|2[0-3]):[0-5]\d$"

class AvailabilityCreate(BaseModel):
    date: dt.date | None = None
    weekdays: list[Weekday] | None = Field(default=None, min_length=1)
    session: Session
    consulting_start_time: str = Field(pattern=HHMM)
    consulting_end_time: str = Field(pattern=HHMM)
    booking_start_date: dt.date
    booking_start_time: str = Field(pattern=HHMM)
    booking_end_date: dt.date
    booking_end_time: str = Field(pattern=HHMM)

class AvailabilityUpdate(BaseModel):
    date: dt.date | None = None
    session: Session | None = None
    consulting_start_time: str | None = Field(default=None, pattern=HHMM)
    consulting_end_time: str | None = Field(default=None, pattern=HHMM)
    booking_start_date: dt.date | None = None
    booking_start_time: str | None = Field(default=None, pattern=HHMM)
    booking_end_date: dt.date | None = None
    booking_end_time: str | None = Field(default=None, pattern=HHMM)

class AvailabilityOut(BaseModel):
    availability_id: uuid.UUID
    doctor_id: uuid.UUID
    date: dt.date
    date_display: str
    session: Session
    consulting_start_time: str
    consulting_end_time: str
    booking_start_at: dt.datetime
    booking_end_at: dt.datetime
    booking_start_display: str
    booking_end_display: str

    @classmethod
    def from_model(cls, a: Availability, tz: dt.tzinfo) -> "AvailabilityOut":
        return cls(
            availability_id=a.id,
            doctor_id=a.doctor_id,
            date=a.date,
            date_display=render_date(a.date),
            session=a.session,
            consulting_start_time=format_minutes(a.consulting_start_minute),
            consulting_end_time=format_minutes(a.consulting_end_minute),
            booking_start_at=a.booking_start_at,
            booking_end_at=a.booking_end_at,
            booking_start_display=render_datetime(a.booking_start_at, tz),
            booking_end_display=render_datetime(a.booking_end_at, tz),
        )

class AvailabilityCreated(BaseModel):
    message: str
    data: list[AvailabilityOut]
    skipped_dates: list[dt.date] = []
    weekdays: list[Weekday] | None = None

class AvailabilityChanged(BaseModel):
    message: str
    availability_id: uuid.UUID
