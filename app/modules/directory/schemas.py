import uuid
from pydantic import BaseModel
from app.modules.directory.models import ScheduleType

class ScheduleTypeUpdate(BaseModel):
    schedule_type: ScheduleType

class DoctorOut(BaseModel):
    id: uuid.UUID
    name: str
    specialization: str | None
    schedule_type: ScheduleType

    class Config:
        from_attributes = True
