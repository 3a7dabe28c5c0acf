import uuid
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from app.modules.directory.models import Doctor, Patient

class DirectoryRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_doctor(self, doctor_id: uuid.UUID) -> Doctor | None:
        q = select(Doctor).where(Doctor.id == doctor_id, Doctor.deleted_at.is_(None))
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def get_patient(self, patient_id: uuid.UUID) -> Patient | None:
        q = select(Patient).where(Patient.id == patient_id, Patient.deleted_at.is_(None))
        res = await self.session.execute(q)
        return res.scalar_one_or_none()
