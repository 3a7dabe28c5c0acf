import uuid
import logging
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.errors import NotFound, collapse_internal
from app.modules.directory.repository import DirectoryRepository
from app.modules.directory.models import Doctor, ScheduleType
from app.modules.events.outbox import OutboxService

logger = logging.getLogger(__name__)

class DirectoryService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = DirectoryRepository(session)

    @collapse_internal("Error updating schedule type")
    async def update_schedule_type(self, doctor_id: uuid.UUID, schedule_type: ScheduleType) -> Doctor:
        doctor = await self.repo.get_doctor(doctor_id)
        if not doctor:
            raise NotFound("Doctor not found")
        # existing slots keep their capacity; only new slots follow the new mode
        doctor.schedule_type = schedule_type
        await self.session.flush()
        await OutboxService(self.session).enqueue("DOCTOR_SCHEDULE_TYPE_UPDATED", "doctor", doctor.id, {"schedule_type": schedule_type.value})
        await self.session.commit()
        logger.info(f"Doctor {doctor_id} schedule type set to {schedule_type.value}")
        return doctor
