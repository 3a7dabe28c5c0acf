import uuid
from datetime import datetime
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, case
from app.modules.timeslots.models import TimeSlot, TimeSlotStatus
from app.modules.availability.models import Availability, Session

class TimeSlotRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **data) -> TimeSlot:
        obj = TimeSlot(**data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get(self, slot_id: uuid.UUID, *, lock: bool = False) -> TimeSlot | None:
        q = select(TimeSlot).where(TimeSlot.id == slot_id, TimeSlot.deleted_at.is_(None))
        if lock:
            # SELECT ... FOR UPDATE serialises bookers of the same slot on PostgreSQL
            q = q.with_for_update().execution_options(populate_existing=True)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def list_live_for_availability(self, availability_id: uuid.UUID, *, exclude_id: uuid.UUID | None = None, lock: bool = False) -> Sequence[TimeSlot]:
        q = select(TimeSlot).where(TimeSlot.availability_id == availability_id, TimeSlot.deleted_at.is_(None))
        if exclude_id is not None:
            q = q.where(TimeSlot.id != exclude_id)
        if lock:
            q = q.with_for_update().execution_options(populate_existing=True)
        res = await self.session.execute(q.order_by(TimeSlot.start_minute.asc()))
        return res.scalars().all()

    async def compare_and_set(self, slot: TimeSlot, **values) -> bool:
        """Write ``values`` only if nobody touched the row since ``slot`` was read.

        Every capacity-changing write goes through here and bumps ``version``,
        so of two racing writers that read the same version exactly one wins.
        """
        res = await self.session.execute(
            update(TimeSlot)
            .where(TimeSlot.id == slot.id, TimeSlot.version == slot.version)
            .values(version=TimeSlot.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            return False
        await self.session.refresh(slot)
        return True

    async def soft_delete(self, slot: TimeSlot, at: datetime) -> bool:
        return await self.compare_and_set(slot, deleted_at=at)

    async def list_available_for_doctor(self, doctor_id: uuid.UUID, *, limit: int, offset: int) -> tuple[Sequence[tuple[TimeSlot, Availability]], int]:
        cond = [
            TimeSlot.doctor_id == doctor_id,
            TimeSlot.status == TimeSlotStatus.AVAILABLE,
            TimeSlot.deleted_at.is_(None),
            Availability.deleted_at.is_(None),
        ]
        session_order = case((Availability.session == Session.MORNING, 0), else_=1)
        q = (
            select(TimeSlot, Availability)
            .join(Availability, TimeSlot.availability_id == Availability.id)
            .where(*cond)
            .order_by(Availability.date.asc(), session_order, TimeSlot.start_minute.asc())
            .limit(limit)
            .offset(offset)
        )
        total_q = select(func.count(TimeSlot.id)).join(Availability, TimeSlot.availability_id == Availability.id).where(*cond)
        rows = (await self.session.execute(q)).tuples().all()
        total = (await self.session.execute(total_q)).scalar_one()
        return rows, total
