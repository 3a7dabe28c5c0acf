import os
import tempfile

# must be set before any app module reads settings
os.environ["ENV"] = "test"
os.environ["CLINIC_TIMEZONE"] = "Asia/Kolkata"
os.environ["EVENT_BUS_PROVIDER"] = "noop"
os.environ["POSTGRES_DSN"] = "sqlite+aiosqlite:///" + os.path.join(tempfile.gettempdir(), "consult-booking-app.db")

import uuid
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from app.core.base import Base
from app.core.db import import_models
from app.modules.availability.schemas import AvailabilityCreate
from app.modules.availability.service import AvailabilityService
from app.modules.directory.models import Doctor, Patient, ScheduleType
from app.modules.timeslots.schemas import TimeSlotCreate
from app.modules.timeslots.service import TimeSlotService

IST = ZoneInfo("Asia/Kolkata")
CONSULT_DAY = date(2025, 6, 1)  # a Sunday

class FixedClock:
    def __init__(self, now: datetime):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def today(self) -> date:
        return self.current.astimezone(IST).date()

    def set(self, when: datetime):
        self.current = when

    def advance(self, **kw):
        self.current = self.current + timedelta(**kw)

def ist(y, mo, d, h, mi=0) -> datetime:
    return datetime(y, mo, d, h, mi, tzinfo=IST)

@pytest.fixture
async def engine(tmp_path):
    import_models()
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()

@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s

@pytest.fixture
def clock():
    # Friday morning, two days before the consulting day
    return FixedClock(ist(2025, 5, 30, 10, 0))

# Seed rows through their own session: a rollback in the session under test
# expires everything it holds, and these objects are read after failures.
async def _add(session_factory, *objs):
    async with session_factory() as s:
        s.add_all(objs)
        await s.commit()
    return objs

@pytest.fixture
async def doctor(session_factory):
    (d,) = await _add(session_factory, Doctor(id=uuid.uuid4(), name="Dr. Meera Rao", specialization="Cardiology", schedule_type=ScheduleType.STREAM))
    return d

@pytest.fixture
async def wave_doctor(session_factory):
    (d,) = await _add(session_factory, Doctor(id=uuid.uuid4(), name="Dr. Arjun Iyer", specialization="General Medicine", schedule_type=ScheduleType.WAVE))
    return d

@pytest.fixture
async def patients(session_factory):
    return list(await _add(session_factory, *(Patient(id=uuid.uuid4(), name=name) for name in ("Asha", "Bilal", "Chitra", "Dev"))))

def window(**overrides) -> AvailabilityCreate:
    data = dict(
        date=CONSULT_DAY,
        session="MORNING",
        consulting_start_time="09:00",
        consulting_end_time="13:00",
        booking_start_date=date(2025, 5, 30),
        booking_start_time="10:00",
        booking_end_date=CONSULT_DAY,
        booking_end_time="08:00",
    )
    data.update(overrides)
    return AvailabilityCreate(**data)

@pytest.fixture
def make_availability(session, clock):
    async def _make(doctor_id, **overrides):
        res = await AvailabilityService(session, clock).create_availability(doctor_id, window(**overrides))
        return res.data[0].availability_id
    return _make

@pytest.fixture
def make_slot(session, clock):
    async def _make(doctor_id, availability_id, start, end, max_patients=None):
        res = await TimeSlotService(session, clock).create_time_slot(
            doctor_id, TimeSlotCreate(availability_id=availability_id, start_time=start, end_time=end, max_patients=max_patients)
        )
        return res.data.timeslot_id
    return _make
