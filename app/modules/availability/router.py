import uuid
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.clock import Clock, get_clock
from app.core.db import get_session
from app.core.security import require_role, Principal, Role
from app.modules.availability.service import AvailabilityService
from app.modules.availability.schemas import AvailabilityCreate, AvailabilityUpdate, AvailabilityCreated, AvailabilityChanged

router = APIRouter()

def svc(s: AsyncSession = Depends(get_session), clock: Clock = Depends(get_clock)) -> AvailabilityService:
    return AvailabilityService(s, clock)

@router.post("/availability", response_model=AvailabilityCreated, status_code=status.HTTP_201_CREATED)
async def create_availability(payload: AvailabilityCreate, principal: Principal = Depends(require_role(Role.DOCTOR)), service: AvailabilityService = Depends(svc)):
    return await service.create_availability(principal.subject_id, payload)

@router.patch("/availability/{availability_id}", response_model=AvailabilityChanged)
async def update_availability(availability_id: uuid.UUID, payload: AvailabilityUpdate, principal: Principal = Depends(require_role(Role.DOCTOR)), service: AvailabilityService = Depends(svc)):
    return await service.update_availability(principal.subject_id, availability_id, payload)

@router.delete("/availability/{availability_id}", response_model=AvailabilityChanged)
async def delete_availability(availability_id: uuid.UUID, principal: Principal = Depends(require_role(Role.DOCTOR)), service: AvailabilityService = Depends(svc)):
    return await service.delete_availability(principal.subject_id, availability_id)
