from fastapi import APIRouter
from app.modules.directory.router import router as directory_router
from app.modules.availability.router import router as availability_router
from app.modules.timeslots.router import router as timeslots_router
from app.modules.appointments.router import router as appointments_router

api_router = APIRouter()
api_router.include_router(directory_router, prefix="/doctors", tags=["doctors"])
api_router.include_router(availability_router, prefix="/doctors", tags=["availability"])
api_router.include_router(timeslots_router, prefix="/doctors", tags=["timeslots"])
api_router.include_router(appointments_router, prefix="/appointments", tags=["appointments"])

@api_router.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
