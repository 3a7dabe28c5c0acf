import enum
import uuid
import datetime as dt
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, TIMESTAMP, Date, ForeignKey, Enum, Index, text
from app.core.base import Base, TimestampedMixin

class Session(str, enum.Enum):
    MORNING = "MORNING"
    EVENING = "EVENING"

# One consulting window of a doctor on one concrete date.
# Clock times are minutes past midnight in the clinic timezone, booking
# bounds are absolute UTC timestamps.
class Availability(Base, TimestampedMixin):
    __tablename__ = "availability"
    __table_args__ = (
        Index(
            "uq_availability_live_window",
            "doctor_id", "date", "session", "consulting_start_minute", "consulting_end_minute",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    doctor_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("doctor.id"), index=True)
    date: Mapped[dt.date] = mapped_column(Date)
    session: Mapped[Session] = mapped_column(Enum(Session, native_enum=False, length=16))
    consulting_start_minute: Mapped[int] = mapped_column(Integer)  # e.g., 9*60
    consulting_end_minute: Mapped[int] = mapped_column(Integer)    # e.g., 13*60
    booking_start_at: Mapped[dt.datetime] = mapped_column(TIMESTAMP(timezone=True))
    booking_end_at: Mapped[dt.datetime] = mapped_column(TIMESTAMP(timezone=True))
