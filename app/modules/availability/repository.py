import uuid
from datetime import date, datetime
from typing import Iterable
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from app.modules.availability.models import Availability, Session

class AvailabilityRepository:
    def __init__(self, s: AsyncSession): self.s = s

    async def create(self, **data) -> Availability:
        obj = Availability(**data); self.s.add(obj); await self.s.flush(); return obj

    async def get(self, availability_id: uuid.UUID, *, lock: bool = False) -> Availability | None:
        q = select(Availability).where(Availability.id == availability_id, Availability.deleted_at.is_(None))
        if lock:
            q = q.with_for_update().execution_options(populate_existing=True)
        res = await self.s.execute(q)
        return res.scalar_one_or_none()

    async def existing_dates(self, doctor_id: uuid.UUID, dates: Iterable[date], session: Session, start_minute: int, end_minute: int, *, exclude_id: uuid.UUID | None = None) -> set[date]:
        q = select(Availability.date).where(
            Availability.doctor_id == doctor_id,
            Availability.date.in_(list(dates)),
            Availability.session == session,
            Availability.consulting_start_minute == start_minute,
            Availability.consulting_end_minute == end_minute,
            Availability.deleted_at.is_(None),
        )
        if exclude_id is not None:
            q = q.where(Availability.id != exclude_id)
        res = await self.s.execute(q)
        return set(res.scalars().all())

    async def compare_and_set(self, obj: Availability, **values) -> bool:
        """Bump ``version`` (and write ``values``) only if it still matches what ``obj`` saw.

        Bookings and every schedule edit go through here, so an edit that
        counted zero appointments cannot commit after a booking slipped in.
        """
        res = await self.s.execute(
            update(Availability)
            .where(Availability.id == obj.id, Availability.version == obj.version)
            .values(version=Availability.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            return False
        await self.s.refresh(obj)
        return True

    async def soft_delete(self, obj: Availability, at: datetime) -> bool:
        return await self.compare_and_set(obj, deleted_at=at)
