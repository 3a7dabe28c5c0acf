from datetime import date, datetime, timezone
from typing import Protocol, runtime_checkable
from zoneinfo import ZoneInfo
from app.core.config import settings

@runtime_checkable
class Clock(Protocol):
    def now(self) -> datetime: ...
    def today(self) -> date: ...

class SystemClock:
    """Wall clock; ``today`` is the calendar date in the clinic timezone."""

    def __init__(self, tz: str | None = None):
        self.tz = ZoneInfo(tz or settings.CLINIC_TIMEZONE)

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().astimezone(self.tz).date()

system_clock = SystemClock()

def get_clock() -> Clock:
    return system_clock
