import uuid
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, get_clock
from app.core.db import get_session
from app.core.security import get_principal, require_role, Principal, Role
from app.modules.appointments.models import AppointmentStatus
from app.modules.appointments.schemas import (
    AppointmentCreate, AppointmentList, BookingResult, CancelResult, RescheduleRequest, RescheduleResult,
)
from app.modules.appointments.service import AppointmentService

router = APIRouter()
logger = logging.getLogger(__name__)

def svc(session: AsyncSession = Depends(get_session), clock: Clock = Depends(get_clock)) -> AppointmentService:
    return AppointmentService(session, clock)

# ---- Appointments ----

@router.post("", response_model=BookingResult, status_code=status.HTTP_201_CREATED)
async def book_appointment(
    payload: AppointmentCreate,
    principal: Principal = Depends(require_role(Role.PATIENT)),
    service: AppointmentService = Depends(svc),
):
    return await service.book(principal.subject_id, payload)

@router.get("", response_model=AppointmentList)
async def list_appointments(
    status: AppointmentStatus | None = None,
    principal: Principal = Depends(get_principal),
    service: AppointmentService = Depends(svc),
):
    return await service.list_appointments(principal.subject_id, principal.role, status)

@router.patch("/reschedule", response_model=RescheduleResult)
async def reschedule_appointments(
    payload: RescheduleRequest,
    principal: Principal = Depends(require_role(Role.DOCTOR)),
    service: AppointmentService = Depends(svc),
):
    return await service.reschedule(principal.subject_id, payload)

@router.patch("/{appointment_id}/cancel", response_model=CancelResult)
async def cancel_appointment(
    appointment_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    service: AppointmentService = Depends(svc),
):
    return await service.cancel(appointment_id, principal.subject_id, principal.role)
