import enum
import uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, ForeignKey, Enum
from app.core.base import Base, TimestampedMixin

class TimeSlotStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    BOOKED = "BOOKED"  # live appointments == max_patients

class TimeSlot(Base, TimestampedMixin):
    __tablename__ = "timeslot"

    availability_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("availability.id"), index=True)
    doctor_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("doctor.id"), index=True)
    start_minute: Mapped[int] = mapped_column(Integer)
    end_minute: Mapped[int] = mapped_column(Integer)
    max_patients: Mapped[int] = mapped_column(Integer, default=1)
    status: Mapped[TimeSlotStatus] = mapped_column(Enum(TimeSlotStatus, native_enum=False, length=16), default=TimeSlotStatus.AVAILABLE)

