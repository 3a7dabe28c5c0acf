import uuid
import logging
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.clock import Clock, system_clock
from app.core.config import settings
from app.core.errors import BadRequest, Conflict, NotFound, collapse_internal
from app.core.timecalc import as_utc, combine, format_minutes, future_dates_for_weekdays, parse_minutes, render_date, render_datetime
from app.modules.availability.repository import AvailabilityRepository
from app.modules.availability.models import Availability
from app.modules.availability.schemas import AvailabilityCreate, AvailabilityUpdate, AvailabilityOut, AvailabilityCreated, AvailabilityChanged
from app.modules.appointments.repository import AppointmentRepository
from app.modules.directory.repository import DirectoryRepository
from app.modules.events.outbox import OutboxService
from app.modules.timeslots.repository import TimeSlotRepository

logger = logging.getLogger(__name__)

def _check_consulting(start_minute: int, end_minute: int):
    if start_minute >= end_minute:
        raise BadRequest("Consulting start time must be before consulting end time")

def _check_booking_window(booking_start_at: datetime, booking_end_at: datetime):
    if booking_start_at >= booking_end_at:
        raise BadRequest("Booking start time must be before booking end time")

class AvailabilityService:
    def __init__(self, s: AsyncSession, clock: Clock | None = None):
        self.s = s
        self.session = s
        self.clock = clock or system_clock
        self.tz = ZoneInfo(settings.CLINIC_TIMEZONE)
        self.repo = AvailabilityRepository(s)
        self.slots = TimeSlotRepository(s)
        self.appts = AppointmentRepository(s)
        self.directory = DirectoryRepository(s)

    def _check_booking_closes(self, d: date, consulting_start_minute: int, booking_start_at: datetime, booking_end_at: datetime):
        # booking must close no later than the consultation starts on that date
        consulting_start_at = combine(d, consulting_start_minute, self.tz)
        if booking_start_at > consulting_start_at or booking_end_at > consulting_start_at:
            raise BadRequest(
                f"Booking time must be before the consulting start time: {render_datetime(consulting_start_at, self.tz)}"
            )

    @collapse_internal("Error creating availability")
    async def create_availability(self, doctor_id: uuid.UUID, payload: AvailabilityCreate) -> AvailabilityCreated:
        now = self.clock.now()
        today = self.clock.today()

        if not payload.date and not payload.weekdays:
            raise BadRequest("Either date or weekdays must be provided")
        if payload.date and payload.date < today:
            raise BadRequest("Consulting date must be in the future")

        start_minute = parse_minutes(payload.consulting_start_time)
        end_minute = parse_minutes(payload.consulting_end_time)
        _check_consulting(start_minute, end_minute)

        booking_start_at = combine(payload.booking_start_date, payload.booking_start_time, self.tz)
        booking_end_at = combine(payload.booking_end_date, payload.booking_end_time, self.tz)
        if booking_start_at < now or booking_end_at < now:
            raise BadRequest("Booking start and end time cannot be in the past")
        _check_booking_window(booking_start_at, booking_end_at)

        if payload.date:
            dates = [payload.date]
        else:
            dates = future_dates_for_weekdays(payload.weekdays, settings.AVAILABILITY_WEEKS_AHEAD, today)
        for d in dates:
            self._check_booking_closes(d, start_minute, booking_start_at, booking_end_at)

        doctor = await self.directory.get_doctor(doctor_id)
        if not doctor:
            raise NotFound("Doctor not found")

        existing = await self.repo.existing_dates(doctor_id, dates, payload.session, start_minute, end_minute)
        if len(existing) == len(dates):
            rendered = ", ".join(render_date(d) for d in sorted(existing))
            raise Conflict(
                f"Availability already exists for the requested {'dates' if len(dates) > 1 else 'date'}: "
                f"{rendered} (session: {payload.session.value})"
            )

        created: list[Availability] = []
        try:
            for d in dates:
                if d in existing:
                    continue
                obj = await self.repo.create(
                    doctor_id=doctor_id,
                    date=d,
                    session=payload.session,
                    consulting_start_minute=start_minute,
                    consulting_end_minute=end_minute,
                    booking_start_at=booking_start_at.astimezone(timezone.utc),
                    booking_end_at=booking_end_at.astimezone(timezone.utc),
                )
                created.append(obj)
        except IntegrityError:
            # lost a race against an identical window created concurrently
            raise Conflict(f"Availability already exists for the requested window (session: {payload.session.value})")

        outbox = OutboxService(self.s)
        for obj in created:
            await outbox.enqueue("AVAILABILITY_CREATED", "availability", obj.id, {"doctor_id": str(doctor_id), "date": obj.date.isoformat(), "session": obj.session.value})
        await self.s.commit()

        logger.info(f"Doctor {doctor_id} created {len(created)} availability window(s), skipped {len(existing)}")
        return AvailabilityCreated(
            message="Availability created",
            data=[AvailabilityOut.from_model(a, self.tz) for a in created],
            skipped_dates=sorted(existing),
            weekdays=None if payload.date else payload.weekdays,
        )

    async def _get_owned(self, doctor_id: uuid.UUID, availability_id: uuid.UUID) -> Availability:
        a = await self.repo.get(availability_id, lock=True)
        if not a or a.doctor_id != doctor_id:
            raise NotFound("Availability not found")
        return a

    @collapse_internal("Error updating availability")
    async def update_availability(self, doctor_id: uuid.UUID, availability_id: uuid.UUID, payload: AvailabilityUpdate) -> AvailabilityChanged:
        a = await self._get_owned(doctor_id, availability_id)
        # lock the slot layout before counting so a booking cannot slip in between
        slots = await self.slots.list_live_for_availability(a.id, lock=True)
        if await self.appts.count_live_for_availability(a.id) > 0:
            raise Conflict("Cannot update availability with active appointments")

        now = self.clock.now()
        changes = payload.model_dump(exclude_unset=True)

        new_date = changes.get("date") or a.date
        if "date" in changes and new_date < self.clock.today():
            raise BadRequest("Consulting date must be in the future")
        new_session = changes.get("session") or a.session
        start_minute = parse_minutes(changes["consulting_start_time"]) if changes.get("consulting_start_time") else a.consulting_start_minute
        end_minute = parse_minutes(changes["consulting_end_time"]) if changes.get("consulting_end_time") else a.consulting_end_minute
        _check_consulting(start_minute, end_minute)

        booking_start_at = self._merge_timestamp(a.booking_start_at, changes.get("booking_start_date"), changes.get("booking_start_time"))
        booking_end_at = self._merge_timestamp(a.booking_end_at, changes.get("booking_end_date"), changes.get("booking_end_time"))
        if booking_start_at != as_utc(a.booking_start_at) and booking_start_at < now:
            raise BadRequest("Booking start time cannot be in the past")
        if booking_end_at != as_utc(a.booking_end_at) and booking_end_at < now:
            raise BadRequest("Booking end time cannot be in the past")
        _check_booking_window(booking_start_at, booking_end_at)
        self._check_booking_closes(new_date, start_minute, booking_start_at, booking_end_at)

        for slot in slots:
            if slot.start_minute < start_minute or slot.end_minute > end_minute:
                raise Conflict(
                    f"Time slot ({format_minutes(slot.start_minute)}-{format_minutes(slot.end_minute)}) "
                    f"would fall outside the consulting window ({format_minutes(start_minute)}-{format_minutes(end_minute)})"
                )

        clash = await self.repo.existing_dates(doctor_id, [new_date], new_session, start_minute, end_minute, exclude_id=a.id)
        if clash:
            raise Conflict(f"Availability already exists for {render_date(new_date)} (session: {new_session.value})")

        ok = await self.repo.compare_and_set(
            a,
            date=new_date,
            session=new_session,
            consulting_start_minute=start_minute,
            consulting_end_minute=end_minute,
            booking_start_at=booking_start_at,
            booking_end_at=booking_end_at,
        )
        if not ok:
            await self._lost_race(a.id, "Cannot update availability with active appointments")
        await OutboxService(self.s).enqueue("AVAILABILITY_UPDATED", "availability", a.id, {"fields": sorted(changes)})
        await self.s.commit()
        logger.info(f"Availability {a.id} updated: {sorted(changes)}")
        return AvailabilityChanged(message="Availability updated successfully", availability_id=a.id)

    async def _lost_race(self, availability_id: uuid.UUID, booked_message: str):
        # someone wrote the window after we counted; report what they did
        await self.s.rollback()
        if await self.appts.count_live_for_availability(availability_id) > 0:
            raise Conflict(booked_message)
        raise Conflict("Availability was modified concurrently; please retry")

    def _merge_timestamp(self, current: datetime, new_date: date | None, new_time: str | None) -> datetime:
        current = as_utc(current)
        if new_date is None and new_time is None:
            return current
        local = current.astimezone(self.tz)
        d = new_date or local.date()
        hhmm = new_time or local.strftime("%H:%M")
        return combine(d, hhmm, self.tz).astimezone(timezone.utc)

    @collapse_internal("Error deleting availability")
    async def delete_availability(self, doctor_id: uuid.UUID, availability_id: uuid.UUID) -> AvailabilityChanged:
        a = await self._get_owned(doctor_id, availability_id)
        slots = await self.slots.list_live_for_availability(a.id, lock=True)
        if await self.appts.count_live_for_availability(a.id) > 0:
            raise Conflict("Cannot delete availability with booked appointments")

        now = self.clock.now()
        availability_id = a.id
        for slot in slots:
            if not await self.slots.soft_delete(slot, now):
                await self._lost_race(availability_id, "Cannot delete availability with booked appointments")
        if not await self.repo.soft_delete(a, now):
            await self._lost_race(availability_id, "Cannot delete availability with booked appointments")
        await OutboxService(self.s).enqueue("AVAILABILITY_DELETED", "availability", a.id, {"timeslots_deleted": len(slots)})
        await self.s.commit()
        logger.info(f"Availability {a.id} deleted with {len(slots)} time slot(s)")
        return AvailabilityChanged(message="Availability deleted successfully", availability_id=a.id)
