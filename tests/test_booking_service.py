import uuid

import pytest
from sqlalchemy import select

from app.core.errors import BadRequest, Conflict, NotFound
from app.core.security import Role
from app.modules.appointments.booking_logic import reporting_minute
from app.modules.appointments.models import Appointment, AppointmentStatus
from app.modules.appointments.schemas import AppointmentCreate
from app.modules.appointments.service import AppointmentService
from app.modules.events.outbox import EventOutbox
from app.modules.timeslots.models import TimeSlot, TimeSlotStatus

from conftest import ist

def booking(doctor_id, timeslot_id, **kw) -> AppointmentCreate:
    return AppointmentCreate(doctor_id=doctor_id, timeslot_id=timeslot_id, **kw)

async def slot_status(session, slot_id) -> TimeSlotStatus:
    slot = await session.get(TimeSlot, slot_id, populate_existing=True)
    return slot.status

@pytest.mark.parametrize("start,end,seats,expected", [
    (540, 600, 3, [540, 560, 580]),
    (540, 570, 4, [540, 547, 555, 562]),  # floor of 7.5 minute steps
    (540, 541, 2, [540, 540]),
    (540, 600, 1, [540]),
])
def test_reporting_minute_spreads_seats(start, end, seats, expected):
    assert [reporting_minute(start, end, seats, i) for i in range(seats)] == expected

async def test_wave_slot_staggers_reporting_times(session, clock, wave_doctor, patients, make_availability, make_slot):
    availability_id = await make_availability(wave_doctor.id)
    slot_id = await make_slot(wave_doctor.id, availability_id, "09:00", "10:00", max_patients=3)
    svc = AppointmentService(session, clock)

    times = []
    for p in patients[:3]:
        res = await svc.book(p.id, booking(wave_doctor.id, slot_id, reason="Follow-up"))
        times.append(res.data.reporting_time)
        assert res.data.doctor.name == "Dr. Arjun Iyer"

    assert times == ["09:00", "09:20", "09:40"]
    assert await slot_status(session, slot_id) == TimeSlotStatus.BOOKED

    with pytest.raises(Conflict):
        await svc.book(patients[3].id, booking(wave_doctor.id, slot_id))

async def test_stream_slot_books_once(session, clock, doctor, patients, make_availability, make_slot):
    availability_id = await make_availability(doctor.id)
    slot_id = await make_slot(doctor.id, availability_id, "09:00", "09:30")
    svc = AppointmentService(session, clock)

    res = await svc.book(patients[0].id, booking(doctor.id, slot_id))
    assert res.message == "Appointment booked successfully"
    assert res.data.reporting_time == "09:00"
    assert res.data.status == AppointmentStatus.SCHEDULED
    assert await slot_status(session, slot_id) == TimeSlotStatus.BOOKED

    with pytest.raises(Conflict):
        await svc.book(patients[1].id, booking(doctor.id, slot_id))

    events = (await session.execute(select(EventOutbox).where(EventOutbox.event_type == "APPOINTMENT_BOOKED"))).scalars().all()
    assert len(events) == 1
    assert events[0].payload["reporting_time"] == "09:00"

async def test_booking_window_not_open(session, clock, doctor, patients, make_availability, make_slot):
    availability_id = await make_availability(doctor.id, booking_start_time="12:00")
    slot_id = await make_slot(doctor.id, availability_id, "09:00", "09:30")

    with pytest.raises(Conflict, match="not opened yet"):
        await AppointmentService(session, clock).book(patients[0].id, booking(doctor.id, slot_id))

async def test_booking_window_closed(session, clock, doctor, patients, make_availability, make_slot):
    availability_id = await make_availability(doctor.id)
    slot_id = await make_slot(doctor.id, availability_id, "09:00", "09:30")
    clock.set(ist(2025, 6, 1, 8, 1))

    with pytest.raises(Conflict, match="closed"):
        await AppointmentService(session, clock).book(patients[0].id, booking(doctor.id, slot_id))

async def test_booking_at_window_edges(session, clock, doctor, patients, make_availability, make_slot):
    availability_id = await make_availability(doctor.id)
    first = await make_slot(doctor.id, availability_id, "09:00", "09:30")
    svc = AppointmentService(session, clock)

    # opens at 10:00 on the 30th, which is exactly now
    await svc.book(patients[0].id, booking(doctor.id, first))

    evening = await make_availability(doctor.id, session="EVENING", consulting_start_time="17:00", consulting_end_time="19:00")
    second = await make_slot(doctor.id, evening, "17:00", "17:30")
    clock.set(ist(2025, 6, 1, 8, 0))
    await svc.book(patients[0].id, booking(doctor.id, second))

async def test_slot_of_another_doctor(session, clock, doctor, wave_doctor, patients, make_availability, make_slot):
    availability_id = await make_availability(doctor.id)
    slot_id = await make_slot(doctor.id, availability_id, "09:00", "09:30")

    with pytest.raises(BadRequest, match="does not belong"):
        await AppointmentService(session, clock).book(patients[0].id, booking(wave_doctor.id, slot_id))

async def test_unknown_slot_and_patient(session, clock, doctor, make_availability, make_slot):
    availability_id = await make_availability(doctor.id)
    slot_id = await make_slot(doctor.id, availability_id, "09:00", "09:30")
    svc = AppointmentService(session, clock)

    with pytest.raises(NotFound, match="Time slot not found"):
        await svc.book(uuid.uuid4(), booking(doctor.id, uuid.uuid4()))
    with pytest.raises(NotFound, match="Patient not found"):
        await svc.book(uuid.uuid4(), booking(doctor.id, slot_id))

async def test_one_appointment_per_doctor_session(session, clock, wave_doctor, patients, make_availability, make_slot):
    morning = await make_availability(wave_doctor.id)
    a = await make_slot(wave_doctor.id, morning, "09:00", "10:00", max_patients=3)
    b = await make_slot(wave_doctor.id, morning, "10:00", "11:00", max_patients=3)
    evening = await make_availability(wave_doctor.id, session="EVENING", consulting_start_time="17:00", consulting_end_time="19:00")
    c = await make_slot(wave_doctor.id, evening, "17:00", "18:00", max_patients=3)
    svc = AppointmentService(session, clock)

    await svc.book(patients[0].id, booking(wave_doctor.id, a))
    with pytest.raises(Conflict, match="already have an appointment"):
        await svc.book(patients[0].id, booking(wave_doctor.id, b))
    with pytest.raises(Conflict, match="already have an appointment"):
        await svc.book(patients[0].id, booking(wave_doctor.id, a))

    # a different session of the same day is fine
    res = await svc.book(patients[0].id, booking(wave_doctor.id, c))
    assert res.data.session.value == "EVENING"

async def test_cancel_releases_the_seat(session, clock, doctor, patients, make_availability, make_slot):
    availability_id = await make_availability(doctor.id)
    slot_id = await make_slot(doctor.id, availability_id, "09:00", "09:30")
    svc = AppointmentService(session, clock)
    first = await svc.book(patients[0].id, booking(doctor.id, slot_id))

    res = await svc.cancel(first.data.appointment_id, patients[0].id, Role.PATIENT)
    assert res.message == "Appointment cancelled successfully"
    assert await slot_status(session, slot_id) == TimeSlotStatus.AVAILABLE

    second = await svc.book(patients[1].id, booking(doctor.id, slot_id))
    assert second.data.reporting_time == "09:00"
    # full again
    with pytest.raises(Conflict):
        await svc.book(patients[0].id, booking(doctor.id, slot_id))

async def test_cancel_reopens_a_full_wave_slot(session, clock, wave_doctor, patients, make_availability, make_slot):
    availability_id = await make_availability(wave_doctor.id)
    slot_id = await make_slot(wave_doctor.id, availability_id, "09:00", "10:00", max_patients=2)
    svc = AppointmentService(session, clock)
    first = await svc.book(patients[0].id, booking(wave_doctor.id, slot_id))
    await svc.book(patients[1].id, booking(wave_doctor.id, slot_id))
    assert await slot_status(session, slot_id) == TimeSlotStatus.BOOKED

    await svc.cancel(first.data.appointment_id, patients[0].id, Role.PATIENT)
    assert await slot_status(session, slot_id) == TimeSlotStatus.AVAILABLE

    third = await svc.book(patients[2].id, booking(wave_doctor.id, slot_id))
    assert third.data.reporting_time == "09:30"

async def test_cancel_rules(session, clock, doctor, patients, make_availability, make_slot):
    availability_id = await make_availability(doctor.id)
    slot_id = await make_slot(doctor.id, availability_id, "09:00", "09:30")
    svc = AppointmentService(session, clock)
    appt_id = (await svc.book(patients[0].id, booking(doctor.id, slot_id))).data.appointment_id

    with pytest.raises(Conflict, match="your own"):
        await svc.cancel(appt_id, patients[1].id, Role.PATIENT)
    with pytest.raises(NotFound):
        await svc.cancel(uuid.uuid4(), patients[0].id, Role.PATIENT)

    # the treating doctor may cancel too
    await svc.cancel(appt_id, doctor.id, Role.DOCTOR)
    with pytest.raises(Conflict, match="already cancelled"):
        await svc.cancel(appt_id, patients[0].id, Role.PATIENT)

    appt = await session.get(Appointment, appt_id, populate_existing=True)
    assert appt.status == AppointmentStatus.CANCELLED

async def test_cancel_after_consultation_start(session, clock, doctor, patients, make_availability, make_slot):
    availability_id = await make_availability(doctor.id)
    slot_id = await make_slot(doctor.id, availability_id, "09:00", "09:30")
    svc = AppointmentService(session, clock)
    appt_id = (await svc.book(patients[0].id, booking(doctor.id, slot_id))).data.appointment_id

    clock.set(ist(2025, 6, 1, 9, 0))
    with pytest.raises(Conflict, match="before the consultation starts"):
        await svc.cancel(appt_id, patients[0].id, Role.PATIENT)

    clock.set(ist(2025, 6, 1, 8, 59))
    await svc.cancel(appt_id, patients[0].id, Role.PATIENT)
