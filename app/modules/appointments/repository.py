import uuid
from datetime import date
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_
from app.modules.appointments.models import Appointment, AppointmentStatus
from app.modules.availability.models import Availability, Session
from app.modules.timeslots.models import TimeSlot
from app.modules.directory.models import Doctor, Patient

LIVE = AppointmentStatus.SCHEDULED

class AppointmentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **data) -> Appointment:
        obj = Appointment(**data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get(self, appt_id: uuid.UUID, *, lock: bool = False) -> Appointment | None:
        q = select(Appointment).where(Appointment.id == appt_id, Appointment.deleted_at.is_(None))
        if lock:
            q = q.with_for_update().execution_options(populate_existing=True)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def count_live_for_slot(self, timeslot_id: uuid.UUID) -> int:
        q = select(func.count(Appointment.id)).where(
            Appointment.timeslot_id == timeslot_id,
            Appointment.status == LIVE,
            Appointment.deleted_at.is_(None),
        )
        return (await self.session.execute(q)).scalar_one()

    async def count_live_for_availability(self, availability_id: uuid.UUID) -> int:
        q = (
            select(func.count(Appointment.id))
            .join(TimeSlot, Appointment.timeslot_id == TimeSlot.id)
            .where(
                TimeSlot.availability_id == availability_id,
                Appointment.status == LIVE,
                Appointment.deleted_at.is_(None),
            )
        )
        return (await self.session.execute(q)).scalar_one()

    async def find_live_in_session(self, patient_id: uuid.UUID, doctor_id: uuid.UUID, on: date, session: Session) -> Appointment | None:
        q = (
            select(Appointment)
            .join(TimeSlot, Appointment.timeslot_id == TimeSlot.id)
            .join(Availability, TimeSlot.availability_id == Availability.id)
            .where(
                Appointment.patient_id == patient_id,
                Appointment.doctor_id == doctor_id,
                Appointment.status == LIVE,
                Appointment.deleted_at.is_(None),
                Availability.date == on,
                Availability.session == session,
            )
            .limit(1)
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def list_live_for_doctor_on(self, doctor_id: uuid.UUID, on: date, *, ids: Sequence[uuid.UUID] | None = None) -> Sequence[tuple[Appointment, TimeSlot, Availability]]:
        cond = [
            Appointment.doctor_id == doctor_id,
            Appointment.status == LIVE,
            Appointment.deleted_at.is_(None),
            Availability.date == on,
        ]
        if ids:
            cond.append(Appointment.id.in_(list(ids)))
        q = (
            select(Appointment, TimeSlot, Availability)
            .join(TimeSlot, Appointment.timeslot_id == TimeSlot.id)
            .join(Availability, TimeSlot.availability_id == Availability.id)
            .where(and_(*cond))
            .order_by(TimeSlot.start_minute.asc(), Appointment.reporting_minute.asc())
            .with_for_update(of=Appointment)
            .execution_options(populate_existing=True)
        )
        return (await self.session.execute(q)).tuples().all()

    async def list_for_patient(self, patient_id: uuid.UUID, *, status: AppointmentStatus | None = None) -> Sequence[tuple[Appointment, TimeSlot, Availability, Doctor]]:
        cond = [Appointment.patient_id == patient_id, Appointment.deleted_at.is_(None)]
        if status:
            cond.append(Appointment.status == status)
        q = (
            select(Appointment, TimeSlot, Availability, Doctor)
            .join(TimeSlot, Appointment.timeslot_id == TimeSlot.id)
            .join(Availability, TimeSlot.availability_id == Availability.id)
            .join(Doctor, Appointment.doctor_id == Doctor.id)
            .where(and_(*cond))
            .order_by(_order_for(status))
        )
        return (await self.session.execute(q)).tuples().all()

    async def list_for_doctor(self, doctor_id: uuid.UUID, *, status: AppointmentStatus | None = None) -> Sequence[tuple[Appointment, TimeSlot, Availability, Patient]]:
        cond = [Appointment.doctor_id == doctor_id, Appointment.deleted_at.is_(None)]
        if status:
            cond.append(Appointment.status == status)
        q = (
            select(Appointment, TimeSlot, Availability, Patient)
            .join(TimeSlot, Appointment.timeslot_id == TimeSlot.id)
            .join(Availability, TimeSlot.availability_id == Availability.id)
            .join(Patient, Appointment.patient_id == Patient.id)
            .where(and_(*cond))
            .order_by(_order_for(status))
        )
        return (await self.session.execute(q)).tuples().all()

def _order_for(status: AppointmentStatus | None):
    # upcoming appointments read oldest first, history newest first
    if status == AppointmentStatus.SCHEDULED:
        return Appointment.scheduled_on.asc()
    return Appointment.scheduled_on.desc()
