import uuid
import logging
from zoneinfo import ZoneInfo
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, system_clock
from app.core.config import settings
from app.core.errors import BadRequest, Conflict, NotFound, collapse_internal
from app.core.security import Role
from app.core.timecalc import combine, format_minutes
from app.modules.appointments.booking_logic import check_booking_window, reporting_minute, shift_problem
from app.modules.appointments.models import AppointmentStatus
from app.modules.appointments.repository import AppointmentRepository
from app.modules.appointments.schemas import (
    AppointmentCreate, AppointmentOut, AppointmentList, BookingResult, CancelResult,
    RescheduleDirection, RescheduleRequest, RescheduleResult, RescheduledOut,
)
from app.modules.availability.repository import AvailabilityRepository
from app.modules.directory.repository import DirectoryRepository
from app.modules.events.outbox import OutboxService
from app.modules.timeslots.models import TimeSlotStatus
from app.modules.timeslots.repository import TimeSlotRepository

logger = logging.getLogger(__name__)

VALID_NEXT = {
    AppointmentStatus.SCHEDULED: {AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED},
    AppointmentStatus.CANCELLED: set(),
    AppointmentStatus.COMPLETED: set(),
}

_LIST_MESSAGES = {
    AppointmentStatus.SCHEDULED: "your upcoming appointments",
    AppointmentStatus.COMPLETED: "your completed appointments",
    AppointmentStatus.CANCELLED: "your cancelled appointments",
}

class AppointmentService:
    def __init__(self, session: AsyncSession, clock: Clock | None = None):
        self.session = session
        self.clock = clock or system_clock
        self.tz = ZoneInfo(settings.CLINIC_TIMEZONE)
        self.appts = AppointmentRepository(session)
        self.slots = TimeSlotRepository(session)
        self.availability = AvailabilityRepository(session)
        self.directory = DirectoryRepository(session)

    # ---- Booking ----

    @collapse_internal("Error creating appointment")
    async def book(self, patient_id: uuid.UUID, payload: AppointmentCreate) -> BookingResult:
        now = self.clock.now()

        slot = await self.slots.get(payload.timeslot_id)
        if not slot:
            raise NotFound("Time slot not found")
        # lock order is availability then slot, same as the schedule edits
        availability = await self.availability.get(slot.availability_id, lock=True)
        if not availability:
            raise NotFound("Time slot not found")
        slot = await self.slots.get(payload.timeslot_id, lock=True)
        if not slot:
            raise NotFound("Time slot not found")
        if slot.status != TimeSlotStatus.AVAILABLE:
            raise Conflict("Time slot is no longer available")
        check_booking_window(now, availability)
        if slot.doctor_id != payload.doctor_id:
            raise BadRequest("Time slot does not belong to this doctor")

        patient = await self.directory.get_patient(patient_id)
        if not patient:
            raise NotFound("Patient not found")
        doctor = await self.directory.get_doctor(slot.doctor_id)

        doctor_id, on, sitting = slot.doctor_id, availability.date, availability.session
        if await self.appts.find_live_in_session(patient_id, doctor_id, on, sitting):
            raise Conflict("You already have an appointment with this doctor in this session.")

        slot_id, capacity = slot.id, slot.max_patients
        count = await self.appts.count_live_for_slot(slot_id)
        if count >= capacity:
            raise Conflict("This time slot is already full.")

        appt = await self.appts.create(
            doctor_id=doctor_id,
            patient_id=patient_id,
            timeslot_id=slot_id,
            status=AppointmentStatus.SCHEDULED,
            scheduled_on=now,
            reason=payload.reason,
            notes=payload.notes,
            reporting_minute=reporting_minute(slot.start_minute, slot.end_minute, capacity, count),
        )
        new_status = TimeSlotStatus.BOOKED if count + 1 >= capacity else TimeSlotStatus.AVAILABLE
        # the slot version guards its capacity, the availability version guards
        # the one-per-session rule and any schedule edit that counted zero
        claimed = await self.slots.compare_and_set(slot, status=new_status) and await self.availability.compare_and_set(availability)
        if not claimed:
            await self.session.rollback()
            if await self.appts.find_live_in_session(patient_id, doctor_id, on, sitting):
                raise Conflict("You already have an appointment with this doctor in this session.")
            if not await self.slots.get(slot_id):
                raise NotFound("Time slot not found")
            if await self.appts.count_live_for_slot(slot_id) >= capacity:
                raise Conflict("This time slot is already full.")
            raise Conflict("Time slot was booked concurrently; please retry")

        await OutboxService(self.session).enqueue("APPOINTMENT_BOOKED", "appointment", appt.id, {
            "doctor_id": str(appt.doctor_id),
            "patient_id": str(patient_id),
            "timeslot_id": str(slot_id),
            "date": availability.date.isoformat(),
            "reporting_time": format_minutes(appt.reporting_minute),
        })
        await self.session.commit()
        logger.info(f"Appointment {appt.id} booked in slot {slot_id} ({count + 1}/{capacity})")
        return BookingResult(
            message="Appointment booked successfully",
            data=AppointmentOut.build(appt, slot, availability, doctor=doctor),
        )

    # ---- Cancellation ----

    @collapse_internal("Error cancelling appointment")
    async def cancel(self, appointment_id: uuid.UUID, caller_id: uuid.UUID, caller_role: Role) -> CancelResult:
        appt = await self.appts.get(appointment_id, lock=True)
        if not appt:
            raise NotFound("Appointment not found")
        owner = {Role.PATIENT: appt.patient_id, Role.DOCTOR: appt.doctor_id}.get(caller_role)
        if owner != caller_id:
            raise Conflict("You can only cancel your own appointments")
        if AppointmentStatus.CANCELLED not in VALID_NEXT[appt.status]:
            raise Conflict("Appointment already cancelled or completed")

        slot = await self.slots.get(appt.timeslot_id, lock=True)
        availability = await self.availability.get(slot.availability_id) if slot else None
        if not slot or not availability:
            raise NotFound("Time slot not found")

        consultation_start = combine(availability.date, slot.start_minute, self.tz)
        if self.clock.now() >= consultation_start:
            raise Conflict("You can only cancel appointments before the consultation starts")

        appt.status = AppointmentStatus.CANCELLED
        await self.session.flush()

        # release the seat
        live = await self.appts.count_live_for_slot(slot.id)
        new_status = TimeSlotStatus.BOOKED if live >= slot.max_patients else TimeSlotStatus.AVAILABLE
        if not await self.slots.compare_and_set(slot, status=new_status):
            raise Conflict("Time slot was modified concurrently; please retry")

        await OutboxService(self.session).enqueue("APPOINTMENT_CANCELLED", "appointment", appt.id, {
            "cancelled_by": caller_role.value,
            "timeslot_id": str(slot.id),
        })
        await self.session.commit()
        logger.info(f"Appointment {appt.id} cancelled by {caller_role.value} {caller_id}")
        return CancelResult(message="Appointment cancelled successfully", appointment_id=appt.id)

    # ---- Reschedule ----

    @collapse_internal("Error rescheduling appointments")
    async def reschedule(self, doctor_id: uuid.UUID, payload: RescheduleRequest) -> RescheduleResult:
        if not settings.RESCHEDULE_MIN_SHIFT_MINUTES <= payload.shift_minutes <= settings.RESCHEDULE_MAX_SHIFT_MINUTES:
            raise BadRequest(
                f"shift_minutes must be between {settings.RESCHEDULE_MIN_SHIFT_MINUTES} and {settings.RESCHEDULE_MAX_SHIFT_MINUTES}"
            )
        today = self.clock.today()
        rows = await self.appts.list_live_for_doctor_on(doctor_id, today, ids=payload.appointment_ids)
        if not rows:
            raise NotFound("No appointments found")
        if payload.appointment_ids:
            missing = set(payload.appointment_ids) - {appt.id for appt, _, _ in rows}
            if missing:
                raise NotFound(f"Appointments not found for today: {', '.join(sorted(str(m) for m in missing))}")

        delta = payload.shift_minutes if payload.direction == RescheduleDirection.LATER else -payload.shift_minutes

        layouts = {}
        problems: list[str] = []
        for appt, slot, availability in rows:
            if availability.id not in layouts:
                layouts[availability.id] = await self.slots.list_live_for_availability(availability.id, lock=True)
            problem = shift_problem(appt.reporting_minute + delta, slot, availability, layouts[availability.id])
            if problem:
                problems.append(f"appointment {appt.id}: {problem}")
        if problems:
            # all or nothing
            raise Conflict("Reschedule rejected: " + "; ".join(problems))

        out: list[RescheduledOut] = []
        for appt, _, _ in rows:
            previous = appt.reporting_minute
            appt.reporting_minute = previous + delta
            appt.reschedule_count = (appt.reschedule_count or 0) + 1
            out.append(RescheduledOut(
                appointment_id=appt.id,
                previous_reporting_time=format_minutes(previous),
                reporting_time=format_minutes(appt.reporting_minute),
            ))
        await self.session.flush()
        await OutboxService(self.session).enqueue("APPOINTMENTS_RESCHEDULED", "doctor", doctor_id, {
            "shift_minutes": delta,
            "appointment_ids": [str(o.appointment_id) for o in out],
        })
        await self.session.commit()
        logger.info(f"Doctor {doctor_id} shifted {len(out)} appointment(s) by {delta} minutes")
        return RescheduleResult(message="Appointments rescheduled successfully", total=len(out), data=out)

    # ---- Read side ----

    @collapse_internal("Error fetching appointments")
    async def list_appointments(self, caller_id: uuid.UUID, caller_role: Role, status: AppointmentStatus | None = None) -> AppointmentList:
        if caller_role == Role.PATIENT:
            rows = await self.appts.list_for_patient(caller_id, status=status)
            data = [AppointmentOut.build(a, s, av, doctor=d) for a, s, av, d in rows]
        elif caller_role == Role.DOCTOR:
            rows = await self.appts.list_for_doctor(caller_id, status=status)
            data = [AppointmentOut.build(a, s, av, patient=p) for a, s, av, p in rows]
        else:
            raise BadRequest("Invalid user role")
        return AppointmentList(message=_LIST_MESSAGES.get(status, "your all appointments"), total=len(data), data=data)
