import uuid
import datetime as dt
from pydantic import BaseModel, Field
from app.core.timecalc import format_minutes
from app.modules.availability.models import Availability, Session
from app.modules.availability.schemas import HHMM
from app.modules.timeslots.models import TimeSlot, TimeSlotStatus

class TimeSlotCreate(BaseModel):
    availability_id: uuid.UUID
    start_time: str = Field(pattern=HHMM)
    end_time: str = Field(pattern=HHMM)
    max_patients: int | None = Field(default=None, ge=1)

class TimeSlotUpdate(BaseModel):
    start_time: str | None = Field(default=None, pattern=HHMM)
    end_time: str | None = Field(default=None, pattern=HHMM)
    max_patients: int | None = Field(default=None, ge=1)

class TimeSlotOut(BaseModel):
    timeslot_id: uuid.UUID
    availability_id: uuid.UUID
    date: dt.date
    session: Session
    start_time: str
    end_time: str
    max_patients: int
    status: TimeSlotStatus

    @classmethod
    def from_model(cls, slot: TimeSlot, availability: Availability) -> "TimeSlotOut":
        return cls(
            timeslot_id=slot.id,
            availability_id=slot.availability_id,
            date=availability.date,
            session=availability.session,
            start_time=format_minutes(slot.start_minute),
            end_time=format_minutes(slot.end_minute),
            max_patients=slot.max_patients,
            status=slot.status,
        )

class TimeSlotResult(BaseModel):
    message: str
    data: TimeSlotOut | None = None

class AvailableSlotsPage(BaseModel):
    total: int
    page: int
    limit: int
    slots: list[TimeSlotOut]
