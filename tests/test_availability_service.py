import uuid
from datetime import date

import pytest
from sqlalchemy import select

from app.core.errors import BadRequest, Conflict, NotFound
from app.core.security import Role
from app.modules.appointments.schemas import AppointmentCreate
from app.modules.appointments.service import AppointmentService
from app.modules.availability.models import Availability
from app.modules.availability.schemas import AvailabilityUpdate
from app.modules.availability.service import AvailabilityService
from app.modules.events.outbox import EventOutbox
from app.modules.timeslots.models import TimeSlot

from conftest import CONSULT_DAY, window

async def test_create_single_date(session, clock, doctor):
    res = await AvailabilityService(session, clock).create_availability(doctor.id, window())

    assert len(res.data) == 1
    out = res.data[0]
    assert out.date == CONSULT_DAY
    assert out.consulting_start_time == "09:00"
    assert out.consulting_end_time == "13:00"
    assert out.date_display == "Sun Jun 01 2025"
    assert out.booking_end_display == "Sun Jun 01 2025 08:00"
    assert res.skipped_dates == []

async def test_create_from_weekdays_uses_four_week_horizon(session, clock, doctor):
    res = await AvailabilityService(session, clock).create_availability(
        doctor.id, window(date=None, weekdays=["MONDAY", "FRIDAY"], booking_end_date=date(2025, 6, 2))
    )

    assert [a.date for a in res.data] == [
        date(2025, 6, 2), date(2025, 6, 6), date(2025, 6, 9), date(2025, 6, 13),
        date(2025, 6, 16), date(2025, 6, 20), date(2025, 6, 23),
    ]
    assert res.weekdays is not None

async def test_existing_dates_are_skipped_when_others_succeed(session, clock, doctor, make_availability):
    await make_availability(doctor.id, date=date(2025, 6, 2), booking_end_date=date(2025, 6, 2))

    res = await AvailabilityService(session, clock).create_availability(
        doctor.id, window(date=None, weekdays=["MONDAY"], booking_end_date=date(2025, 6, 2))
    )

    assert res.skipped_dates == [date(2025, 6, 2)]
    assert [a.date for a in res.data] == [date(2025, 6, 9), date(2025, 6, 16), date(2025, 6, 23)]

async def test_conflict_when_every_date_exists(session, clock, doctor, make_availability):
    await make_availability(doctor.id)

    with pytest.raises(Conflict, match="already exists"):
        await AvailabilityService(session, clock).create_availability(doctor.id, window())

async def test_same_date_with_different_window_is_allowed(session, clock, doctor, make_availability):
    await make_availability(doctor.id)

    res = await AvailabilityService(session, clock).create_availability(doctor.id, window(consulting_start_time="14:00", consulting_end_time="16:00"))
    assert len(res.data) == 1

async def test_requires_date_or_weekdays(session, clock, doctor):
    with pytest.raises(BadRequest, match="Either date or weekdays"):
        await AvailabilityService(session, clock).create_availability(doctor.id, window(date=None))

@pytest.mark.parametrize("overrides,match", [
    (dict(consulting_start_time="13:00", consulting_end_time="09:00"), "Consulting start"),
    (dict(booking_start_date=date(2025, 5, 29)), "cannot be in the past"),
    (dict(booking_start_date=CONSULT_DAY, booking_start_time="08:00"), "Booking start time must be before"),
    (dict(booking_end_time="09:30"), "before the consulting start"),
    (dict(date=date(2025, 5, 29)), "must be in the future"),
])
async def test_create_validation(session, clock, doctor, overrides, match):
    with pytest.raises(BadRequest, match=match):
        await AvailabilityService(session, clock).create_availability(doctor.id, window(**overrides))

async def test_unknown_doctor(session, clock):
    with pytest.raises(NotFound):
        await AvailabilityService(session, clock).create_availability(uuid.uuid4(), window())

async def test_delete_cascades_to_time_slots(session, clock, doctor, make_availability, make_slot):
    availability_id = await make_availability(doctor.id)
    await make_slot(doctor.id, availability_id, "09:00", "09:30")
    await make_slot(doctor.id, availability_id, "09:30", "10:00")

    res = await AvailabilityService(session, clock).delete_availability(doctor.id, availability_id)
    assert res.availability_id == availability_id

    slots = (await session.execute(select(TimeSlot).where(TimeSlot.availability_id == availability_id))).scalars().all()
    assert len(slots) == 2
    assert all(s.is_deleted for s in slots)
    a = await session.get(Availability, availability_id, populate_existing=True)
    assert a.is_deleted

    events = (await session.execute(select(EventOutbox.event_type))).scalars().all()
    assert "AVAILABILITY_DELETED" in events

async def test_delete_without_slots(session, clock, doctor, make_availability):
    availability_id = await make_availability(doctor.id)
    await AvailabilityService(session, clock).delete_availability(doctor.id, availability_id)

    with pytest.raises(NotFound):
        await AvailabilityService(session, clock).delete_availability(doctor.id, availability_id)

async def test_delete_with_live_appointment_conflicts(session, clock, doctor, patients, make_availability, make_slot):
    availability_id = await make_availability(doctor.id)
    await make_slot(doctor.id, availability_id, "09:00", "09:30")
    booked = await make_slot(doctor.id, availability_id, "10:00", "10:30")
    await AppointmentService(session, clock).book(patients[0].id, AppointmentCreate(doctor_id=doctor.id, timeslot_id=booked))

    with pytest.raises(Conflict, match="booked appointments"):
        await AvailabilityService(session, clock).delete_availability(doctor.id, availability_id)

async def test_delete_after_cancellation_succeeds(session, clock, doctor, patients, make_availability, make_slot):
    availability_id = await make_availability(doctor.id)
    slot_id = await make_slot(doctor.id, availability_id, "09:00", "09:30")
    booking = await AppointmentService(session, clock).book(patients[0].id, AppointmentCreate(doctor_id=doctor.id, timeslot_id=slot_id))
    await AppointmentService(session, clock).cancel(booking.data.appointment_id, patients[0].id, Role.PATIENT)

    await AvailabilityService(session, clock).delete_availability(doctor.id, availability_id)

async def test_other_doctor_cannot_touch_availability(session, clock, doctor, wave_doctor, make_availability):
    availability_id = await make_availability(doctor.id)
    svc = AvailabilityService(session, clock)

    with pytest.raises(NotFound):
        await svc.delete_availability(wave_doctor.id, availability_id)
    with pytest.raises(NotFound):
        await svc.update_availability(wave_doctor.id, availability_id, AvailabilityUpdate(session="EVENING"))

async def test_update_booking_window(session, clock, doctor, make_availability):
    availability_id = await make_availability(doctor.id)

    await AvailabilityService(session, clock).update_availability(
        doctor.id, availability_id, AvailabilityUpdate(booking_end_date=date(2025, 5, 31), booking_end_time="20:00")
    )

    a = await session.get(Availability, availability_id, populate_existing=True)
    out_end = a.booking_end_at
    # 20:00 IST is 14:30 UTC
    assert (out_end.hour, out_end.minute) == (14, 30)
    assert a.date == CONSULT_DAY

async def test_update_rejects_window_that_strands_slots(session, clock, doctor, make_availability, make_slot):
    availability_id = await make_availability(doctor.id)
    await make_slot(doctor.id, availability_id, "12:00", "12:30")

    with pytest.raises(Conflict, match="outside the consulting window"):
        await AvailabilityService(session, clock).update_availability(
            doctor.id, availability_id, AvailabilityUpdate(consulting_end_time="12:00")
        )

async def test_update_rejects_booking_after_consulting_start(session, clock, doctor, make_availability):
    availability_id = await make_availability(doctor.id)

    with pytest.raises(BadRequest, match="before the consulting start"):
        await AvailabilityService(session, clock).update_availability(
            doctor.id, availability_id, AvailabilityUpdate(consulting_start_time="07:00")
        )

async def test_update_with_live_appointment_conflicts(session, clock, doctor, patients, make_availability, make_slot):
    availability_id = await make_availability(doctor.id)
    slot_id = await make_slot(doctor.id, availability_id, "09:00", "09:30")
    await AppointmentService(session, clock).book(patients[0].id, AppointmentCreate(doctor_id=doctor.id, timeslot_id=slot_id))

    with pytest.raises(Conflict, match="active appointments"):
        await AvailabilityService(session, clock).update_availability(
            doctor.id, availability_id, AvailabilityUpdate(consulting_end_time="12:00")
        )

async def test_update_into_existing_window_conflicts(session, clock, doctor, make_availability):
    await make_availability(doctor.id, session="EVENING", consulting_start_time="17:00", consulting_end_time="20:00")
    morning = await make_availability(doctor.id)

    with pytest.raises(Conflict, match="already exists"):
        await AvailabilityService(session, clock).update_availability(
            doctor.id, morning,
            AvailabilityUpdate(session="EVENING", consulting_start_time="17:00", consulting_end_time="20:00"),
        )
