from pydantic import BaseModel, Field, field_validator
import enum
import uuid
import datetime as dt
from app.core.timecalc import format_minutes
from app.modules.appointments.models import Appointment, AppointmentStatus
from app.modules.availability.models import Availability, Session
from app.modules.directory.models import Doctor, Patient
from app.modules.timeslots.models import TimeSlot

# ---- Requests ----

class AppointmentCreate(BaseModel):
    doctor_id: uuid.UUID
    timeslot_id: uuid.UUID
    reason: str | None = Field(default=None, max_length=255)
    notes: str | None = None

class RescheduleDirection(str, enum.Enum):
    EARLIER = "EARLIER"
    LATER = "LATER"

class RescheduleRequest(BaseModel):
    shift_minutes: int
    direction: RescheduleDirection
    # None means every SCHEDULED appointment of the doctor today
    appointment_ids: list[uuid.UUID] | None = Field(default=None, min_length=1)

    @field_validator("appointment_ids")
    @classmethod
    def _unique_ids(cls, v: list[uuid.UUID] | None):
        if v is not None and len(set(v)) != len(v):
            raise ValueError("appointment_ids must be unique")
        return v

# ---- Responses ----

class CounterpartOut(BaseModel):
    id: uuid.UUID
    name: str
    specialization: str | None = None

class AppointmentOut(BaseModel):
    appointment_id: uuid.UUID
    status: AppointmentStatus
    scheduled_on: dt.datetime
    reason: str | None
    notes: str | None
    date: dt.date
    session: Session
    timeslot_id: uuid.UUID
    slot_start_time: str
    slot_end_time: str
    reporting_time: str
    reschedule_count: int = 0
    doctor: CounterpartOut | None = None
    patient: CounterpartOut | None = None

    @classmethod
    def build(cls, appt: Appointment, slot: TimeSlot, availability: Availability, *, doctor: Doctor | None = None, patient: Patient | None = None) -> "AppointmentOut":
        return cls(
            appointment_id=appt.id,
            status=appt.status,
            scheduled_on=appt.scheduled_on,
            reason=appt.reason,
            notes=appt.notes,
            date=availability.date,
            session=availability.session,
            timeslot_id=slot.id,
            slot_start_time=format_minutes(slot.start_minute),
            slot_end_time=format_minutes(slot.end_minute),
            reporting_time=format_minutes(appt.reporting_minute),
            reschedule_count=appt.reschedule_count or 0,
            doctor=CounterpartOut(id=doctor.id, name=doctor.name, specialization=doctor.specialization) if doctor else None,
            patient=CounterpartOut(id=patient.id, name=patient.name) if patient else None,
        )

class BookingResult(BaseModel):
    message: str
    data: AppointmentOut

class AppointmentList(BaseModel):
    message: str
    total: int
    data: list[AppointmentOut]

class CancelResult(BaseModel):
    message: str
    appointment_id: uuid.UUID

class RescheduledOut(BaseModel):
    appointment_id: uuid.UUID
    previous_reporting_time: str
    reporting_time: str

class RescheduleResult(BaseModel):
    message: str
    total: int
    data: list[RescheduledOut]
