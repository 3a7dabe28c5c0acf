import uuid
import logging
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.clock import Clock, system_clock
from app.core.config import settings
from app.core.errors import BadRequest, Conflict, NotFound, collapse_internal
from app.core.timecalc import format_minutes, parse_minutes, ranges_overlap
from app.modules.availability.models import Availability
from app.modules.availability.repository import AvailabilityRepository
from app.modules.appointments.repository import AppointmentRepository
from app.modules.directory.models import ScheduleType
from app.modules.directory.repository import DirectoryRepository
from app.modules.events.outbox import OutboxService
from app.modules.timeslots.models import TimeSlot, TimeSlotStatus
from app.modules.timeslots.repository import TimeSlotRepository
from app.modules.timeslots.schemas import TimeSlotCreate, TimeSlotUpdate, TimeSlotOut, TimeSlotResult, AvailableSlotsPage

logger = logging.getLogger(__name__)

BOOKED_LAYOUT = "Cannot change a time slot of an availability with active appointments"

def check_in_window(start_minute: int, end_minute: int, availability: Availability):
    if start_minute >= end_minute:
        raise BadRequest("Time slot start time must be before its end time")
    if start_minute < availability.consulting_start_minute or end_minute > availability.consulting_end_minute:
        raise BadRequest(
            f"Time slot must lie within the consulting window "
            f"({format_minutes(availability.consulting_start_minute)}-{format_minutes(availability.consulting_end_minute)})"
        )

def check_no_overlap(start_minute: int, end_minute: int, others: Sequence[TimeSlot]):
    for other in others:
        if ranges_overlap(start_minute, end_minute, other.start_minute, other.end_minute):
            raise Conflict(
                f"Time slot ({format_minutes(start_minute)}-{format_minutes(end_minute)}) overlaps with existing "
                f"time slot ({format_minutes(other.start_minute)}-{format_minutes(other.end_minute)})"
            )

class TimeSlotService:
    def __init__(self, session: AsyncSession, clock: Clock | None = None):
        self.session = session
        self.clock = clock or system_clock
        self.slots = TimeSlotRepository(session)
        self.availability = AvailabilityRepository(session)
        self.appts = AppointmentRepository(session)
        self.directory = DirectoryRepository(session)

    @collapse_internal("Error creating time slot")
    async def create_time_slot(self, doctor_id: uuid.UUID, payload: TimeSlotCreate) -> TimeSlotResult:
        doctor = await self.directory.get_doctor(doctor_id)
        if not doctor:
            raise NotFound("Doctor not found")
        if doctor.schedule_type == ScheduleType.WAVE and not payload.max_patients:
            raise BadRequest("max_patients is required for wave scheduling")

        # locking the parent serialises concurrent slot creation in one window
        availability = await self.availability.get(payload.availability_id, lock=True)
        if not availability or availability.doctor_id != doctor_id:
            raise NotFound("Availability not found")

        start_minute = parse_minutes(payload.start_time)
        end_minute = parse_minutes(payload.end_time)
        check_in_window(start_minute, end_minute, availability)
        check_no_overlap(start_minute, end_minute, await self.slots.list_live_for_availability(availability.id))

        if not await self.availability.compare_and_set(availability):
            raise Conflict("Availability was modified concurrently; please retry")
        slot = await self.slots.create(
            availability_id=availability.id,
            doctor_id=doctor_id,
            start_minute=start_minute,
            end_minute=end_minute,
            max_patients=payload.max_patients if doctor.schedule_type == ScheduleType.WAVE else 1,
            status=TimeSlotStatus.AVAILABLE,
        )
        await OutboxService(self.session).enqueue("TIMESLOT_CREATED", "timeslot", slot.id, {"availability_id": str(availability.id)})
        await self.session.commit()
        logger.info(f"Time slot {slot.id} created in availability {availability.id}")
        return TimeSlotResult(message="Time slot created successfully", data=TimeSlotOut.from_model(slot, availability))

    async def _lock_layout(self, doctor_id: uuid.UUID, timeslot_id: uuid.UUID) -> tuple[TimeSlot, Availability, list[TimeSlot]]:
        """Lock the slot, its availability and its siblings; veto when anything is booked."""
        slot = await self.slots.get(timeslot_id)
        if not slot or slot.doctor_id != doctor_id:
            raise NotFound("Time slot not found")
        availability = await self.availability.get(slot.availability_id, lock=True)
        if not availability:
            raise NotFound("Time slot not found")
        layout = await self.slots.list_live_for_availability(availability.id, lock=True)
        if slot.id not in {s.id for s in layout}:
            # deleted between the first read and the lock
            raise NotFound("Time slot not found")
        if await self.appts.count_live_for_availability(availability.id) > 0:
            raise Conflict(BOOKED_LAYOUT)
        return slot, availability, [s for s in layout if s.id != slot.id]

    async def _claim_layout(self, availability: Availability):
        # a booking in any sibling bumps the availability version
        availability_id = availability.id
        if await self.availability.compare_and_set(availability):
            return
        await self.session.rollback()
        if await self.appts.count_live_for_availability(availability_id) > 0:
            raise Conflict(BOOKED_LAYOUT)
        raise Conflict("Time slot was modified concurrently; please retry")

    @collapse_internal("Error updating time slot")
    async def update_time_slot(self, doctor_id: uuid.UUID, timeslot_id: uuid.UUID, payload: TimeSlotUpdate) -> TimeSlotResult:
        slot, availability, others = await self._lock_layout(doctor_id, timeslot_id)
        doctor = await self.directory.get_doctor(doctor_id)
        if not doctor:
            raise NotFound("Doctor not found")

        start_minute = parse_minutes(payload.start_time) if payload.start_time else slot.start_minute
        end_minute = parse_minutes(payload.end_time) if payload.end_time else slot.end_minute
        check_in_window(start_minute, end_minute, availability)
        check_no_overlap(start_minute, end_minute, others)

        max_patients = slot.max_patients
        if doctor.schedule_type == ScheduleType.WAVE and payload.max_patients:
            max_patients = payload.max_patients
        elif doctor.schedule_type == ScheduleType.STREAM:
            max_patients = 1

        await self._claim_layout(availability)
        ok = await self.slots.compare_and_set(
            slot,
            start_minute=start_minute,
            end_minute=end_minute,
            max_patients=max_patients,
            status=TimeSlotStatus.AVAILABLE,  # nothing is booked here
        )
        if not ok:
            raise Conflict("Time slot was modified concurrently; please retry")
        await OutboxService(self.session).enqueue("TIMESLOT_UPDATED", "timeslot", slot.id, payload.model_dump(exclude_unset=True))
        await self.session.commit()
        logger.info(f"Time slot {slot.id} updated")
        return TimeSlotResult(message="Time slot updated successfully", data=TimeSlotOut.from_model(slot, availability))

    @collapse_internal("Error deleting time slot")
    async def delete_time_slot(self, doctor_id: uuid.UUID, timeslot_id: uuid.UUID) -> TimeSlotResult:
        slot, availability, _ = await self._lock_layout(doctor_id, timeslot_id)
        await self._claim_layout(availability)
        if not await self.slots.soft_delete(slot, self.clock.now()):
            raise Conflict("Time slot was modified concurrently; please retry")
        await OutboxService(self.session).enqueue("TIMESLOT_DELETED", "timeslot", slot.id, {"availability_id": str(availability.id)})
        await self.session.commit()
        logger.info(f"Time slot {slot.id} deleted")
        return TimeSlotResult(message="Time slot deleted successfully")

    @collapse_internal("Error fetching time slots")
    async def list_available_time_slots(self, doctor_id: uuid.UUID, page: int = 1, limit: int = 5) -> AvailableSlotsPage:
        if page < 1 or limit < 1 or limit > settings.SLOTS_PAGE_LIMIT_MAX:
            raise BadRequest(f"page must be >= 1 and limit between 1 and {settings.SLOTS_PAGE_LIMIT_MAX}")
        doctor = await self.directory.get_doctor(doctor_id)
        if not doctor:
            raise BadRequest("Invalid doctor ID")
        rows, total = await self.slots.list_available_for_doctor(doctor_id, limit=limit, offset=(page - 1) * limit)
        return AvailableSlotsPage(
            total=total,
            page=page,
            limit=limit,
            slots=[TimeSlotOut.from_model(s, a) for s, a in rows],
        )
