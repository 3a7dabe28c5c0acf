import enum
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, Integer, TIMESTAMP, ForeignKey, Enum
from app.core.base import Base, TimestampedMixin

class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"  # live: counts against slot capacity
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"

class Appointment(Base, TimestampedMixin):
    doctor_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("doctor.id"), index=True)
    patient_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("patient.id"), index=True)
    timeslot_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("timeslot.id"), index=True)

    status: Mapped[AppointmentStatus] = mapped_column(Enum(AppointmentStatus, native_enum=False, length=16), default=AppointmentStatus.SCHEDULED)
    scheduled_on: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))
    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # check-in time inside the slot, minutes past midnight
    reporting_minute: Mapped[int] = mapped_column(Integer)
    reschedule_count: Mapped[int] = mapped_column(default=0)
