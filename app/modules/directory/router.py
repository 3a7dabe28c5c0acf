from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.db import get_session
from app.core.security import require_role, Principal, Role
from app.modules.directory.schemas import ScheduleTypeUpdate, DoctorOut
from app.modules.directory.service import DirectoryService

router = APIRouter()

def svc(session: AsyncSession = Depends(get_session)) -> DirectoryService:
    return DirectoryService(session)

@router.patch("/schedule-type", response_model=DoctorOut)
async def update_schedule_type(
    payload: ScheduleTypeUpdate,
    principal: Principal = Depends(require_role(Role.DOCTOR)),
    service: DirectoryService = Depends(svc),
):
    return await service.update_schedule_type(principal.subject_id, payload.schedule_type)
