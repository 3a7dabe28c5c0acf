"""Pure booking rules: no session, no clock reads."""
from datetime import datetime
from typing import Sequence
from app.core.errors import Conflict
from app.core.timecalc import as_utc, format_minutes, ranges_overlap
from app.modules.availability.models import Availability
from app.modules.timeslots.models import TimeSlot

def reporting_minute(start_minute: int, end_minute: int, max_patients: int, index: int) -> int:
    """Check-in minute for the ``index``-th (0-based) patient of a slot.

    Patients are spread evenly across the slot and the result is rounded
    down, so 09:00-10:00 with three seats yields 09:00, 09:20 and 09:40.
    """
    return start_minute + ((end_minute - start_minute) * index) // max_patients

def check_booking_window(now: datetime, availability: Availability):
    if now < as_utc(availability.booking_start_at):
        raise Conflict("Booking window not opened yet")
    if now > as_utc(availability.booking_end_at):
        raise Conflict("Booking window closed")

def shift_problem(minute: int, slot: TimeSlot, availability: Availability, siblings: Sequence[TimeSlot]) -> str | None:
    """Why a shifted reporting time is not allowed, or None when it is."""
    if minute < availability.consulting_start_minute or minute >= availability.consulting_end_minute:
        return (
            f"shifted time {minute // 60:02d}:{minute % 60:02d} is outside the consulting window "
            f"{format_minutes(availability.consulting_start_minute)}-{format_minutes(availability.consulting_end_minute)}"
        )
    for other in siblings:
        if other.id != slot.id and ranges_overlap(minute, minute + 1, other.start_minute, other.end_minute):
            return (
                f"shifted time {format_minutes(minute)} falls inside time slot "
                f"{format_minutes(other.start_minute)}-{format_minutes(other.end_minute)}"
            )
    return None
