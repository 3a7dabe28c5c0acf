import enum
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Enum
from app.core.base import Base, TimestampedMixin

class ScheduleType(str, enum.Enum):
    STREAM = "STREAM"  # one patient per slot
    WAVE = "WAVE"      # max_patients per slot, staggered reporting times

# Identity references only; profiles are owned by an external directory.
# The primary key is the verified subject id of the caller.
class Doctor(Base, TimestampedMixin):
    __tablename__ = "doctor"
    name: Mapped[str] = mapped_column(String(160))
    specialization: Mapped[str | None] = mapped_column(String(120), nullable=True)
    schedule_type: Mapped[ScheduleType] = mapped_column(Enum(ScheduleType, native_enum=False, length=16), default=ScheduleType.STREAM)

class Patient(Base, TimestampedMixin):
    __tablename__ = "patient"
    name: Mapped[str] = mapped_column(String(200))
    primary_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
