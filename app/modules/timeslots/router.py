import uuid
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.clock import Clock, get_clock
from app.core.db import get_session
from app.core.security import get_principal, require_role, Principal, Role
from app.modules.timeslots.service import TimeSlotService
from app.modules.timeslots.schemas import TimeSlotCreate, TimeSlotUpdate, TimeSlotResult, AvailableSlotsPage

router = APIRouter()

def svc(session: AsyncSession = Depends(get_session), clock: Clock = Depends(get_clock)) -> TimeSlotService:
    return TimeSlotService(session, clock)

@router.post("/timeslots", response_model=TimeSlotResult, status_code=status.HTTP_201_CREATED)
async def create_time_slot(
    payload: TimeSlotCreate,
    principal: Principal = Depends(require_role(Role.DOCTOR)),
    service: TimeSlotService = Depends(svc),
):
    return await service.create_time_slot(principal.subject_id, payload)

@router.patch("/timeslots/{timeslot_id}", response_model=TimeSlotResult)
async def update_time_slot(
    timeslot_id: uuid.UUID,
    payload: TimeSlotUpdate,
    principal: Principal = Depends(require_role(Role.DOCTOR)),
    service: TimeSlotService = Depends(svc),
):
    return await service.update_time_slot(principal.subject_id, timeslot_id, payload)

@router.delete("/timeslots/{timeslot_id}", response_model=TimeSlotResult)
async def delete_time_slot(
    timeslot_id: uuid.UUID,
    principal: Principal = Depends(require_role(Role.DOCTOR)),
    service: TimeSlotService = Depends(svc),
):
    return await service.delete_time_slot(principal.subject_id, timeslot_id)

# Any authenticated caller may browse a doctor's open slots
@router.get("/{doctor_id}/timeslots", response_model=AvailableSlotsPage, dependencies=[Depends(get_principal)])
async def list_available_time_slots(
    doctor_id: uuid.UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(5, ge=1),
    service: TimeSlotService = Depends(svc),
):
    return await service.list_available_time_slots(doctor_id, page, limit)
